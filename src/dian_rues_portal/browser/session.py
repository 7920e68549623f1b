from __future__ import annotations

import logging
from typing import Any, Callable, Optional

from playwright.sync_api import Browser, BrowserContext, Page, Playwright, sync_playwright

from ..config import BrowserConfig
from .proxies import ProxyConfig


logger = logging.getLogger(__name__)


# Flags tuned for short-lived headless runs inside containers / serverless sandboxes.
CHROMIUM_ARGS: tuple[str, ...] = (
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-accelerated-2d-canvas",
    "--disable-gpu",
    "--window-size=1920x1080",
    "--single-process",
    "--no-zygote",
    "--disable-web-security",
    "--disable-features=IsolateOrigins,site-per-process",
    "--disable-blink-features=AutomationControlled",
    "--disable-background-timer-throttling",
    "--disable-backgrounding-occluded-windows",
    "--disable-renderer-backgrounding",
    "--disable-ipc-flooding-protection",
    "--disable-hang-monitor",
    "--disable-prompt-on-repost",
    "--disable-sync",
    "--disable-domain-reliability",
    "--metrics-recording-only",
    "--no-first-run",
    "--safebrowsing-disable-auto-update",
    "--disable-client-side-phishing-detection",
    "--disable-default-apps",
    "--mute-audio",
    "--hide-scrollbars",
    "--disable-background-networking",
    "--disk-cache-size=0",
)


class BrowserSession:
    """
    One Playwright browser + context + page for a single invocation.

    Use as a context manager; everything that was created is closed on exit, each piece
    independently, so a failure closing the page never leaks the browser.
    """

    def __init__(
        self,
        *,
        config: BrowserConfig,
        headless: Optional[bool] = None,
        proxy: Optional[ProxyConfig] = None,
        playwright_factory: Callable[[], Any] = sync_playwright,
    ) -> None:
        self.config = config
        self.headless = config.headless if headless is None else bool(headless)
        self.proxy = proxy
        self._playwright_factory = playwright_factory

        self.playwright: Optional[Playwright] = None
        self.browser: Optional[Browser] = None
        self.context: Optional[BrowserContext] = None
        self.page: Optional[Page] = None

    def __enter__(self) -> "BrowserSession":
        try:
            self.start()
        except Exception:
            self.close()
            raise
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def start(self) -> None:
        self.playwright = self._playwright_factory().start()
        self.browser = self._launch(self.playwright)

    def _launch(self, pw: Playwright) -> Browser:
        args = list(CHROMIUM_ARGS) + list(self.config.extra_args)
        launch_kwargs: dict[str, Any] = {
            "headless": self.headless,
            "slow_mo": int(self.config.slow_mo_ms or 0),
            "args": args,
        }
        if self.config.executable_path:
            launch_kwargs["executable_path"] = self.config.executable_path
            # Packaged chromium builds only run headless.
            launch_kwargs["headless"] = True
        if self.proxy is not None:
            logger.info("Using proxy %s", self.proxy.server)
            launch_kwargs["proxy"] = self.proxy.as_playwright()

        try:
            return pw.chromium.launch(**launch_kwargs)
        except Exception as e:
            msg = str(e)
            if "Executable doesn't exist" not in msg or self.config.executable_path:
                raise

            logger.warning(
                "Playwright Chromium executable missing; falling back to system browser channel. (%s)",
                msg,
            )
            try:
                return pw.chromium.launch(channel="chrome", **launch_kwargs)
            except Exception:
                return pw.chromium.launch(channel="msedge", **launch_kwargs)

    def new_page(self, **context_kwargs: Any) -> Page:
        if self.browser is None:
            raise RuntimeError("BrowserSession.new_page() called before start()")
        context_kwargs.setdefault("locale", self.config.locale)
        self.context = self.browser.new_context(**context_kwargs)
        self.page = self.context.new_page()
        self.page.set_default_timeout(self.config.default_timeout_ms)
        logger.debug("Default page timeout: %.0fs", self.config.default_timeout_ms / 1000)
        return self.page

    def close(self) -> None:
        for name, closer in (
            ("page", self.page),
            ("context", self.context),
            ("browser", self.browser),
        ):
            if closer is None:
                continue
            try:
                closer.close()
            except Exception as e:
                logger.warning("Error closing the %s: %s", name, e)

        if self.playwright is not None:
            try:
                self.playwright.stop()
            except Exception as e:
                logger.warning("Error stopping Playwright: %s", e)

        self.page = None
        self.context = None
        self.browser = None
        self.playwright = None
