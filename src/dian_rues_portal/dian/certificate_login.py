from __future__ import annotations

import base64
import logging
import tempfile
import time
from typing import Any, Callable, Optional

from playwright.sync_api import BrowserContext, Page

from ..browser.debug import save_debug_artifacts
from ..browser.proxies import ProxyConfig
from ..browser.session import BrowserSession
from ..captcha.solver import ChallengeSolver
from ..certificates import convert_p12, decode_base64_blob, write_pem_bundle
from ..config import AppConfig
from ..errors import PayloadValidationError
from ..models import CertificateLoginPayload, CertificateLoginResult, PageInfo
from .selectors import DianSelectors, DianUrls
from .turnstile import solve_turnstile


logger = logging.getLogger(__name__)


_WARNING_PAGE_MARKERS = (
    "Your connection is not private",
    "No es seguro",
    "NET::ERR_CERT",
    "Advanced",
    "Avanzado",
)

_PAGE_INFO_JS = """() => ({
    title: document.title,
    url: window.location.href,
    bodyText: (document.body?.innerText || '').substring(0, 500),
    formElements: document.querySelectorAll('form').length,
    hasTurnstile: document.querySelector('.cf-turnstile') !== null,
    hasIdentificationTypeField: !!document.querySelector('#CompanyIdentificationType'),
    hasUserCodeField: !!document.querySelector('#UserCode'),
    hasCompanyCodeField: !!document.querySelector('#CompanyCode'),
})"""


def validate_certificate_payload(payload: CertificateLoginPayload) -> None:
    missing = [
        name
        for name in ("base64CertificateP12", "identificationType", "nitRepresentanteLegal")
        if not str(getattr(payload, name) or "").strip()
    ]
    if missing:
        raise PayloadValidationError(f"Campos obligatorios faltantes: {', '.join(missing)}", missing_fields=missing)


def looks_like_certificate_warning(content: str, url: str) -> bool:
    return url.startswith("chrome-error://") or any(m in (content or "") for m in _WARNING_PAGE_MARKERS)


def classify_login(url: str, body_text: str) -> str:
    """
    Classify the page reached after submitting the certificate login form.

    Returns one of: "success", "captcha", "invalid_data", "unknown".
    """
    if (
        "Dashboard" in url
        or "Home" in url
        or "Bienvenido" in body_text
        or "Menú Principal" in body_text
        or "Login" not in url
    ):
        return "success"
    if "captcha" in body_text or "Turnstile" in body_text:
        return "captcha"
    if "incorrecto" in body_text or "inválido" in body_text:
        return "invalid_data"
    return "unknown"


class DianCertificateLoginClient:
    """
    Log into the DIAN certificate portal with a client certificate (P12) and return session cookies.
    """

    def __init__(
        self,
        *,
        config: AppConfig,
        solver: Optional[ChallengeSolver] = None,
        selectors: Optional[DianSelectors] = None,
        urls: Optional[DianUrls] = None,
        proxy: Optional[ProxyConfig] = None,
        session_factory: Callable[..., Any] = BrowserSession,
    ) -> None:
        self.config = config
        self.solver = solver or ChallengeSolver.from_config(config.captcha)
        self.selectors = selectors or DianSelectors()
        self.urls = urls or DianUrls()
        self.proxy = proxy
        self._session_factory = session_factory

    def run(self, payload: CertificateLoginPayload) -> CertificateLoginResult:
        try:
            validate_certificate_payload(payload)

            # Converted before any browser is launched: a bad certificate/password fails fast.
            bundle = convert_p12(decode_base64_blob(payload.base64CertificateP12), payload.certificatePassword)
            logger.info("Certificate converted from P12 to PEM")

            with tempfile.TemporaryDirectory(prefix="dian-certs-") as tmp:
                paths = write_pem_bundle(bundle, tmp)
                client_certificates = [
                    {"origin": origin, "certPath": str(paths.cert_path), "keyPath": str(paths.key_path)}
                    for origin in self.urls.certificate_origins
                ]
                with self._session_factory(
                    config=self.config.browser, headless=payload.headless, proxy=self.proxy
                ) as session:
                    page = session.new_page(
                        client_certificates=client_certificates,
                        ignore_https_errors=True,
                        viewport={"width": 1920, "height": 1080},
                    )
                    try:
                        return self._login(page, session.context, payload)
                    except Exception:
                        if self.config.debug.enabled:
                            save_debug_artifacts(
                                page, debug_dir=self.config.debug.dir, name_prefix="dian_certificate_login_failure"
                            )
                        raise
        except Exception as e:
            logger.error("DIAN certificate login failed: %s", e, exc_info=not isinstance(e, PayloadValidationError))
            return CertificateLoginResult(success=False, error=str(e))

    def _login(self, page: Page, context: BrowserContext, payload: CertificateLoginPayload) -> CertificateLoginResult:
        screenshots: dict[str, str] = {}
        started = time.time()

        logger.info("Navigating to %s (client certificate is sent automatically)", self.urls.certificate_login)
        try:
            page.goto(self.urls.certificate_login, wait_until="domcontentloaded", timeout=60_000)
        except Exception as e:
            logger.warning("Initial navigation error: %s", e)

        page.wait_for_timeout(2000)
        self._bypass_certificate_warning(page)

        try:
            page.wait_for_load_state("networkidle", timeout=30_000)
        except Exception:
            logger.debug("Timed out waiting for networkidle.")
        logger.info("Page processed in %.0fms", (time.time() - started) * 1000)

        page_info = PageInfo.model_validate(page.evaluate(_PAGE_INFO_JS))
        logger.info("Title=%r url=%s turnstile=%s forms=%d", page_info.title, page_info.url, page_info.hasTurnstile, page_info.formElements)

        has_login_form = page_info.hasIdentificationTypeField and page_info.hasUserCodeField
        login_status = "form_not_found"
        if has_login_form:
            logger.info("Certificate accepted; login form detected.")
            login_status = self._fill_and_submit(page, payload, screenshots)
        else:
            logger.warning(
                "Login form not detected (certificate rejected, page did not load, or the portal changed)."
            )

        final = page.screenshot(full_page=True)
        screenshots["final"] = base64.b64encode(final).decode("ascii")

        cookies = [dict(c) for c in context.cookies()]
        logger.info("Captured %d cookies", len(cookies))

        return CertificateLoginResult(
            success=True,
            certificateAccepted=has_login_form,
            formFilled=has_login_form,
            loginStatus=login_status,
            pageInfo=page_info,
            screenshots=screenshots,
            cookies=cookies,
        )

    def _bypass_certificate_warning(self, page: Page) -> None:
        if not looks_like_certificate_warning(page.content(), page.url):
            logger.info("No browser security warning.")
            return

        logger.warning("Browser security warning detected; trying to proceed.")
        try:
            advanced = page.query_selector(self.selectors.interstitial_advanced_button)
            if advanced is not None:
                advanced.click()
                page.wait_for_timeout(1000)
                proceed = page.query_selector(self.selectors.interstitial_proceed_link)
                if proceed is not None:
                    proceed.click()
                    page.wait_for_timeout(2000)
            else:
                for _ in range(2):
                    page.keyboard.press("Tab")
                    page.wait_for_timeout(200)
                    page.keyboard.press("Enter")
                    page.wait_for_timeout(1000)
        except Exception as e:
            logger.warning("Could not bypass the security warning automatically: %s", e)

    def _fill_and_submit(self, page: Page, payload: CertificateLoginPayload, screenshots: dict[str, str]) -> str:
        sel = self.selectors
        try:
            page.select_option(sel.identification_type, str(payload.identificationType))
            page.wait_for_timeout(500)
            page.fill(sel.user_code, str(payload.nitRepresentanteLegal))
            page.wait_for_timeout(500)

            # Read-only on this page; filled in by the portal from the certificate.
            logger.info("Company NIT detected: %s", page.input_value(sel.company_code))

            captcha_solved = True
            if page.query_selector(sel.captcha_container) is not None:
                token = solve_turnstile(page, solver=self.solver, selectors=sel)
                if token:
                    page.wait_for_timeout(1000)
                else:
                    captcha_solved = False
                    logger.warning("Captcha could not be solved automatically; waiting 10s for manual resolution.")
                    page.wait_for_timeout(10_000)

            screenshots["beforeSubmit"] = base64.b64encode(page.screenshot()).decode("ascii")

            if not captcha_solved:
                logger.warning("Not submitting the form: captcha unresolved.")
                return "captcha_unresolved"

            page.click(sel.certificate_submit_button)
            try:
                page.wait_for_load_state("networkidle", timeout=30_000)
            except Exception:
                logger.info("Timed out waiting for the server response.")
            page.wait_for_timeout(3000)

            after = page.evaluate(
                "() => ({ url: window.location.href, bodyText: (document.body?.innerText || '').substring(0, 500) })"
            )
            status = classify_login(str(after.get("url") or ""), str(after.get("bodyText") or ""))
            logger.info("Post-login status: %s (url=%s)", status, after.get("url"))
            return status
        except Exception as e:
            logger.error("Error filling the certificate login form: %s", e)
            return "form_error"
