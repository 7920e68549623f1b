from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Iterator

import pytest

from dian_rues_portal.config import AppConfig, CaptchaConfig, LoggingConfig
from dian_rues_portal.logging_config import (
    MASK,
    NOISY_LOGGERS,
    SecretMaskingFilter,
    configure_logging,
    configure_logging_from_config,
    secrets_from_config,
)


@pytest.fixture
def restore_root_logging() -> Iterator[None]:
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    noisy = {name: logging.getLogger(name).level for name in NOISY_LOGGERS}
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)
    for name, lvl in noisy.items():
        logging.getLogger(name).setLevel(lvl)


def _record(msg: str, *args: object) -> logging.LogRecord:
    return logging.LogRecord("dian_rues_portal.captcha", logging.WARNING, __file__, 1, msg, args, None)


def test_filter_masks_secrets_in_formatted_message() -> None:
    masking = SecretMaskingFilter(["anti-key-123", "p4ssw0rd"])
    record = _record("Provider rejected key %s via proxy user:%s", "anti-key-123", "p4ssw0rd")

    assert masking.filter(record) is True
    assert record.getMessage() == f"Provider rejected key {MASK} via proxy user:{MASK}"


def test_filter_ignores_blank_and_very_short_values() -> None:
    masking = SecretMaskingFilter(["", "ab", "abcd-1234"])
    assert masking.secrets == ["abcd-1234"]

    record = _record("ab stays, abcd-1234 goes")
    masking.filter(record)
    assert record.getMessage() == f"ab stays, {MASK} goes"


def test_longer_secret_is_masked_whole() -> None:
    masking = SecretMaskingFilter(["key-1", "key-12345"])
    assert masking.mask("using key-12345") == f"using {MASK}"


def test_filter_masks_exception_text() -> None:
    masking = SecretMaskingFilter(["twocaptcha-secret"])
    try:
        raise RuntimeError("ERROR_KEY_DOES_NOT_EXIST for twocaptcha-secret")
    except RuntimeError:
        record = logging.LogRecord("x", logging.ERROR, __file__, 1, "solve failed", None, sys.exc_info())

    masking.filter(record)
    assert "twocaptcha-secret" not in (record.exc_text or "")
    assert MASK in (record.exc_text or "")


def test_secrets_come_from_captcha_keys_and_proxy_passwords() -> None:
    cfg = AppConfig(
        captcha=CaptchaConfig(anticaptcha_api_key="anti-key", twocaptcha_api_key=""),
        proxies=["10.0.0.1:3128:user:pool-pass", "not-a-proxy"],
    )
    assert secrets_from_config(cfg) == ["anti-key", "pool-pass"]


def test_configured_handlers_mask_secrets_in_the_log_file(tmp_path: Path, restore_root_logging: None) -> None:
    log_file = tmp_path / "logs" / "portal.log"
    cfg = AppConfig(
        captcha=CaptchaConfig(twocaptcha_api_key="2captcha-key-999"),
        logging=LoggingConfig(level="debug", file_path=str(log_file), noisy_level="error"),
    )

    configure_logging_from_config(cfg)
    logging.getLogger("dian_rues_portal.captcha.providers").warning("in.php rejected key=%s", "2captcha-key-999")
    for handler in logging.getLogger().handlers:
        handler.flush()

    text = log_file.read_text(encoding="utf-8")
    assert "in.php rejected key=***" in text
    assert "2captcha-key-999" not in text
    assert logging.getLogger().level == logging.DEBUG
    assert all(logging.getLogger(name).level == logging.ERROR for name in NOISY_LOGGERS)


def test_unknown_levels_fall_back(restore_root_logging: None) -> None:
    configure_logging(level="loud", noisy_level="")

    assert logging.getLogger().level == logging.INFO
    assert logging.getLogger("playwright").level == logging.WARNING
