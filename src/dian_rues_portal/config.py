from __future__ import annotations

import os
import re
import json
from pathlib import Path
from typing import Union

import yaml
from pydantic import BaseModel, Field, field_validator


_ENV_VAR_PATTERN = re.compile(r"\$\{([A-Z0-9_]+)\}")


def _expand_env_vars(value: object) -> object:
    if isinstance(value, str):
        def repl(match: re.Match[str]) -> str:
            var = match.group(1)
            return os.getenv(var, "")

        return _ENV_VAR_PATTERN.sub(repl, value)
    if isinstance(value, list):
        return [_expand_env_vars(v) for v in value]
    if isinstance(value, dict):
        return {k: _expand_env_vars(v) for k, v in value.items()}
    return value


def _env_bool(name: str, default: bool = False) -> bool:
    raw = (os.getenv(name, "") or "").strip().lower()
    if not raw:
        return bool(default)
    return raw in {"1", "true", "t", "yes", "y", "si", "on"}


def _env_int(name: str, default: int) -> int:
    raw = (os.getenv(name, "") or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _deep_merge(base: object, override: object) -> object:
    if isinstance(base, dict) and isinstance(override, dict):
        out = dict(base)
        for k, v in override.items():
            if k in out:
                out[k] = _deep_merge(out[k], v)
            else:
                out[k] = v
        return out
    return override


def _parse_proxy_pool_env(value: str) -> list[str]:
    s = (value or "").strip()
    if not s:
        return []

    # JSON list syntax is accepted too: ["1.2.3.4:80:u:p", ...]
    if s.startswith("["):
        try:
            data = json.loads(s)
            if isinstance(data, list):
                return [str(x).strip() for x in data if str(x).strip()]
        except Exception:
            pass

    return [item for item in re.split(r"[,\s]+", s) if item]


def _default_config_from_env() -> dict:
    """
    Env-only config; a YAML file is an optional override on top of this.
    """
    return {
        "captcha": {
            "anticaptcha_api_key": os.getenv("ANTICAPTCHA_API_KEY", ""),
            "twocaptcha_api_key": os.getenv("CAPTCHA_API_KEY", "") or os.getenv("TWOCAPTCHA_API_KEY", ""),
            "poll_interval_seconds": _env_int("CAPTCHA_POLL_INTERVAL_SECONDS", 7),
            "max_poll_attempts": _env_int("CAPTCHA_MAX_POLL_ATTEMPTS", 15),
        },
        "browser": {
            "headless": _env_bool("BROWSER_HEADLESS", default=True),
            "slow_mo_ms": _env_int("BROWSER_SLOW_MO_MS", 0),
            "use_proxy": _env_bool("BROWSER_USE_PROXY", default=False),
            "executable_path": os.getenv("CHROMIUM_EXECUTABLE_PATH", ""),
        },
        "proxies": _parse_proxy_pool_env(os.getenv("PROXY_POOL", "")),
        "debug": {
            "enabled": _env_bool("DEBUG_ARTIFACTS", default=False),
            "dir": os.getenv("DEBUG_DIR", "data/debug"),
            "screenshot_on_error": _env_bool("SCREENSHOT_ON_ERROR", default=True),
        },
        "logging": {
            "level": os.getenv("LOG_LEVEL", "INFO"),
            "file_path": os.getenv("LOG_FILE", ""),
            "noisy_level": os.getenv("NOISY_LOG_LEVEL", "WARNING"),
        },
    }


class CaptchaConfig(BaseModel):
    """
    Credentials and polling cadence for the Turnstile solving services.

    Providers without an API key are skipped by the solver.
    """

    anticaptcha_api_key: str = Field(default="", repr=False)
    anticaptcha_base_url: str = "https://api.anti-captcha.com"
    twocaptcha_api_key: str = Field(default="", repr=False)
    twocaptcha_base_url: str = "https://2captcha.com"
    poll_interval_seconds: float = 7
    max_poll_attempts: int = 15
    request_timeout_seconds: float = 30
    # AntiCaptcha is polled on its own cadence; its SDK uses a few seconds between checks.
    anticaptcha_poll_interval_seconds: float = 3
    anticaptcha_timeout_seconds: float = 120

    @field_validator("anticaptcha_base_url", "twocaptcha_base_url")
    @classmethod
    def _strip_trailing_slash(cls, v: str) -> str:
        return (v or "").strip().rstrip("/")


class BrowserConfig(BaseModel):
    headless: bool = True
    slow_mo_ms: int = 0
    default_timeout_ms: int = 120_000
    use_proxy: bool = False
    locale: str = "es-CO"
    # Packaged chromium builds (e.g. serverless layers) ship their own executable.
    executable_path: str = ""
    extra_args: list[str] = Field(default_factory=list)


class DebugConfig(BaseModel):
    # Save screenshot/HTML/text snapshots under `dir` when a flow fails.
    enabled: bool = False
    dir: str = "data/debug"
    # Attach a base64 screenshot to DIAN failure responses (disable on serverless to keep payloads small).
    screenshot_on_error: bool = True


class LoggingConfig(BaseModel):
    level: str = "INFO"
    file_path: str = ""
    noisy_level: str = "WARNING"


class AppConfig(BaseModel):
    captcha: CaptchaConfig = CaptchaConfig()
    browser: BrowserConfig = BrowserConfig()
    proxies: list[str] = Field(default_factory=list)
    debug: DebugConfig = DebugConfig()
    logging: LoggingConfig = LoggingConfig()


def load_config(path: Union[str, Path, None] = None) -> AppConfig:
    raw: dict = {}
    if path:
        p = Path(path)
        if p.exists():
            raw = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
            raw = _expand_env_vars(raw)  # supports ${ENV_VAR} in YAML

    merged = _deep_merge(_default_config_from_env(), raw)
    return AppConfig.model_validate(merged)
