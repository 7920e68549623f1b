from __future__ import annotations

import logging
from typing import Optional, Sequence

from ..config import CaptchaConfig
from .providers import AntiCaptchaProvider, CaptchaProvider, TwoCaptchaProvider


logger = logging.getLogger(__name__)


class ChallengeSolver:
    """
    Try each captcha provider in priority order until one returns a token.

    `solve()` never raises: an exception, a rejected task or an empty token from a provider
    just moves on to the next one. `None` means nobody could solve it.
    """

    def __init__(self, providers: Sequence[CaptchaProvider]) -> None:
        self.providers = list(providers)

    @classmethod
    def from_config(cls, cfg: CaptchaConfig) -> "ChallengeSolver":
        providers: list[CaptchaProvider] = []
        if cfg.anticaptcha_api_key:
            providers.append(
                AntiCaptchaProvider(
                    api_key=cfg.anticaptcha_api_key,
                    base_url=cfg.anticaptcha_base_url,
                    poll_interval_seconds=cfg.anticaptcha_poll_interval_seconds,
                    timeout_seconds=cfg.anticaptcha_timeout_seconds,
                    request_timeout_seconds=cfg.request_timeout_seconds,
                )
            )
        if cfg.twocaptcha_api_key:
            providers.append(
                TwoCaptchaProvider(
                    api_key=cfg.twocaptcha_api_key,
                    base_url=cfg.twocaptcha_base_url,
                    poll_interval_seconds=cfg.poll_interval_seconds,
                    max_attempts=cfg.max_poll_attempts,
                    request_timeout_seconds=cfg.request_timeout_seconds,
                )
            )
        if not providers:
            logger.warning("No captcha provider API keys configured; Turnstile challenges cannot be solved.")
        return cls(providers)

    def solve(self, site_key: str, page_url: str) -> Optional[str]:
        logger.info("Turnstile challenge detected (site_key=%s)", site_key)
        for idx, provider in enumerate(self.providers):
            if idx > 0:
                logger.info("Trying fallback captcha provider %s...", provider.name)
            try:
                token = provider.solve_turnstile(site_key, page_url)
            except Exception as e:
                logger.warning("Captcha provider %s failed: %s", provider.name, e)
                continue
            if token:
                logger.info("Captcha solved by %s", provider.name)
                return token
            logger.warning("Captcha provider %s returned no token", provider.name)
        return None
