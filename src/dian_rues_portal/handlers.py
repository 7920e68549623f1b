from __future__ import annotations

import json
import logging
import threading
from typing import Any, Mapping, Optional

from .browser.proxies import ProxyConfig, ProxyPool
from .config import AppConfig, load_config
from .dian.certificate_login import DianCertificateLoginClient
from .dian.token_email import DianTokenEmailClient
from .errors import PortalError
from .models import CertificateLoginPayload, DianTokenEmailPayload, RuesPayload, RuesResult
from .rues.client import RuesSearchClient


logger = logging.getLogger(__name__)


STATUS_BY_ERROR_CODE = {
    "VALIDATION_ERROR": 400,
    "NOT_FOUND": 404,
    "API_ERROR": 503,
}

# Event keys accepted for the token-email payload, besides the canonical names.
TOKEN_EMAIL_ALIASES = {
    "identificationType": ("identificationType", "CompanyIdentificationType"),
    "userCode": ("userCode", "UserCode"),
    "companyCode": ("companyCode", "CompanyCode"),
}

_TRUE = {"true", "1", "yes", "si", "sí"}
_FALSE = {"false", "0", "no"}

_proxy_pool: Optional[ProxyPool] = None
_proxy_pool_lock = threading.Lock()


def normalize_boolean(value: Any, default: Optional[bool] = None) -> Optional[bool]:
    """
    Coerce event flags like "true"/"1"/"si" or "false"/"0"/"no"; anything else returns `default`.
    """
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        v = value.strip().lower()
        if v in _TRUE:
            return True
        if v in _FALSE:
            return False
    return default


def get_proxy_pool(cfg: AppConfig) -> ProxyPool:
    # One pool per process so warm invocations keep rotating instead of restarting.
    global _proxy_pool
    with _proxy_pool_lock:
        if _proxy_pool is None:
            _proxy_pool = ProxyPool(cfg.proxies)
        return _proxy_pool


def reset_proxy_pool() -> None:
    global _proxy_pool
    with _proxy_pool_lock:
        _proxy_pool = None


def _next_proxy(cfg: AppConfig) -> Optional[ProxyConfig]:
    if not cfg.browser.use_proxy:
        return None
    proxy = get_proxy_pool(cfg).next()
    if proxy is None:
        logger.warning("Proxy use is enabled but the proxy pool is empty; connecting directly.")
    else:
        logger.info("Using proxy %s", proxy.server)
    return proxy


def _event_body(event: Optional[Mapping[str, Any]]) -> dict[str, Any]:
    """
    Accept either a direct payload or an API-gateway style event with a JSON `body`.
    """
    if not event:
        return {}
    body = event.get("body") if isinstance(event, Mapping) else None
    if isinstance(body, str):
        try:
            parsed = json.loads(body)
        except ValueError:
            return dict(event)
        if isinstance(parsed, dict):
            return parsed
    if isinstance(body, Mapping):
        return dict(body)
    return dict(event)


def _pick(body: Mapping[str, Any], keys: tuple[str, ...]) -> Any:
    for k in keys:
        v = body.get(k)
        if v is not None and str(v).strip() != "":
            return v
    return None


def _response(status_code: int, body: Mapping[str, Any]) -> dict[str, Any]:
    return {"statusCode": status_code, "body": json.dumps(body, ensure_ascii=False)}


def _headless(body: Mapping[str, Any], cfg: AppConfig) -> bool:
    return bool(normalize_boolean(body.get("headless"), default=cfg.browser.headless))


def get_rues_data_handler(event: Optional[Mapping[str, Any]], config: Optional[AppConfig] = None) -> dict[str, Any]:
    try:
        cfg = config or load_config()
        body = _event_body(event)
        payload = RuesPayload(
            identificationNumber=str(body.get("identificationNumber") or "").strip(),
            headless=_headless(body, cfg),
        )
        record = RuesSearchClient(config=cfg, proxy=_next_proxy(cfg)).run(payload)
        return _response(200, RuesResult(success=True, data=record).model_dump(exclude_none=True))
    except PortalError as e:
        status = STATUS_BY_ERROR_CODE.get(e.error_code, 500)
        code = e.error_code if e.error_code in STATUS_BY_ERROR_CODE else "UNKNOWN_ERROR"
        logger.error("RUES lookup failed (%s): %s", code, e)
        return _response(status, RuesResult(success=False, error=str(e), errorCode=code).model_dump(exclude_none=True))
    except Exception as e:
        logger.exception("RUES lookup failed with an unexpected error")
        return _response(
            500, RuesResult(success=False, error=str(e), errorCode="UNKNOWN_ERROR").model_dump(exclude_none=True)
        )


def generate_dian_token_email_handler(
    event: Optional[Mapping[str, Any]], config: Optional[AppConfig] = None
) -> dict[str, Any]:
    try:
        cfg = config or load_config()
        body = _event_body(event)
        values = {name: _pick(body, keys) for name, keys in TOKEN_EMAIL_ALIASES.items()}
        payload = DianTokenEmailPayload(
            identificationType=str(values["identificationType"] or "").strip(),
            userCode=str(values["userCode"] or "").strip(),
            companyCode=str(values["companyCode"] or "").strip(),
            origin=body.get("origin"),
            headless=_headless(body, cfg),
        )
        result = DianTokenEmailClient(config=cfg, proxy=_next_proxy(cfg)).run(payload)
        return _response(200 if result.success else 400, result.model_dump(exclude_none=True))
    except Exception as e:
        logger.exception("DIAN token-email invocation failed unexpectedly")
        return _response(500, {"success": False, "error": str(e)})


def get_dian_cookie_by_certificate_handler(
    event: Optional[Mapping[str, Any]], config: Optional[AppConfig] = None
) -> dict[str, Any]:
    try:
        cfg = config or load_config()
        body = _event_body(event)
        payload = CertificateLoginPayload(
            base64CertificateP12=str(body.get("base64CertificateP12") or ""),
            certificatePassword=str(body.get("certificatePassword") or ""),
            identificationType=str(body.get("identificationType") or "").strip(),
            nitRepresentanteLegal=str(body.get("nitRepresentanteLegal") or "").strip(),
            headless=_headless(body, cfg),
        )
        result = DianCertificateLoginClient(config=cfg, proxy=_next_proxy(cfg)).run(payload)
        return _response(200, result.model_dump(exclude_none=True))
    except Exception as e:
        logger.exception("DIAN certificate login invocation failed unexpectedly")
        return _response(500, {"success": False, "error": str(e)})
