from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Iterable, Optional

from .browser.proxies import parse_proxy

if TYPE_CHECKING:
    from .config import AppConfig


LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s - %(message)s"
MASK = "***"

# Playwright and the captcha HTTP clients are chatty at DEBUG.
NOISY_LOGGERS = ("playwright", "urllib3", "requests")

# Shorter values would mask ordinary words in messages.
_MIN_SECRET_LENGTH = 4


class SecretMaskingFilter(logging.Filter):
    """
    Mask captcha API keys and proxy passwords wherever they end up in a rendered log message
    (provider error payloads, Playwright launch errors that echo the proxy, ...).
    """

    def __init__(self, secrets: Iterable[str] = ()) -> None:
        super().__init__()
        # Longest first, so a secret that contains another is masked whole.
        self.secrets = sorted({s for s in secrets if s and len(s) >= _MIN_SECRET_LENGTH}, key=len, reverse=True)

    def mask(self, text: str) -> str:
        for secret in self.secrets:
            text = text.replace(secret, MASK)
        return text

    def filter(self, record: logging.LogRecord) -> bool:
        if not self.secrets:
            return True
        message = record.getMessage()
        masked = self.mask(message)
        if masked != message:
            record.msg = masked
            record.args = None
        if record.exc_info and not record.exc_text:
            record.exc_text = self.mask(logging.Formatter().formatException(record.exc_info))
        return True


def secrets_from_config(cfg: "AppConfig") -> list[str]:
    secrets = [cfg.captcha.anticaptcha_api_key, cfg.captcha.twocaptcha_api_key]
    for entry in cfg.proxies:
        try:
            secrets.append(parse_proxy(entry).password)
        except ValueError:
            continue
    return [s for s in secrets if s]


def configure_logging(
    level: str = "INFO",
    file_path: Optional[str] = None,
    *,
    secrets: Iterable[str] = (),
    noisy_level: str = "WARNING",
) -> None:
    numeric_level = getattr(logging, (level or "INFO").upper(), logging.INFO)

    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if file_path:
        path = Path(file_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(path, encoding="utf-8"))

    masking = SecretMaskingFilter(secrets)
    for handler in handlers:
        handler.addFilter(masking)

    logging.basicConfig(level=numeric_level, format=LOG_FORMAT, handlers=handlers, force=True)

    quiet = getattr(logging, (noisy_level or "WARNING").upper(), logging.WARNING)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(quiet)


def configure_logging_from_config(cfg: "AppConfig") -> None:
    """
    Reconfigure once the YAML config is loaded, masking the credentials it carries.
    """
    configure_logging(
        level=cfg.logging.level,
        file_path=cfg.logging.file_path or None,
        secrets=secrets_from_config(cfg),
        noisy_level=cfg.logging.noisy_level,
    )
