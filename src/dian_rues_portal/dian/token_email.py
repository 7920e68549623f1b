from __future__ import annotations

import logging
from typing import Any, Callable, Optional

from playwright.sync_api import Page

from ..browser.debug import save_debug_artifacts, screenshot_base64
from ..browser.proxies import ProxyConfig
from ..browser.session import BrowserSession
from ..captcha.solver import ChallengeSolver
from ..config import AppConfig
from ..errors import ChallengeUnresolvedError, PayloadValidationError
from ..models import DianTokenEmailPayload, DianTokenEmailResult
from .modal_guard import ModalGuard
from .outcome import OutcomePoller
from .probe import PlaywrightOutcomeProbe
from .selectors import DianSelectors, DianUrls
from .turnstile import click_with_force_fallback, solve_turnstile


logger = logging.getLogger(__name__)


def validate_token_email_payload(payload: DianTokenEmailPayload) -> None:
    missing = [
        name
        for name in ("identificationType", "userCode", "companyCode")
        if not str(getattr(payload, name) or "").strip()
    ]
    if missing:
        raise PayloadValidationError(f"Campos obligatorios faltantes: {', '.join(missing)}", missing_fields=missing)


class DianTokenEmailClient:
    """
    Request a DIAN login token by email for a company's legal representative.

    Flow: company login page -> "legal representative" option -> fill form -> solve Turnstile ->
    submit -> wait for the portal's verdict (success alert, error modal, toast, or bounce back).
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
        result_timeout_seconds: float = 60,
        poll_interval_seconds: float = 0.1,
    ) -> None:
        self.config = config
        self.solver = solver or ChallengeSolver.from_config(config.captcha)
        self.selectors = selectors or DianSelectors()
        self.urls = urls or DianUrls()
        self.proxy = proxy
        self._session_factory = session_factory
        self.result_timeout_seconds = result_timeout_seconds
        self.poll_interval_seconds = poll_interval_seconds

    def run(self, payload: DianTokenEmailPayload) -> DianTokenEmailResult:
        try:
            validate_token_email_payload(payload)
        except PayloadValidationError as e:
            logger.error("Invalid DIAN token payload: %s", e)
            return DianTokenEmailResult(success=False, error=str(e), origin=payload.origin)

        logger.info("Requesting DIAN token by email (origin=%s)", payload.origin or "unspecified")

        try:
            with self._session_factory(
                config=self.config.browser, headless=payload.headless, proxy=self.proxy
            ) as session:
                page: Optional[Page] = None
                try:
                    page = session.new_page()
                    message = self._request_token(page, payload)
                    logger.info("DIAN accepted the request: %s", message)
                    return DianTokenEmailResult(success=True, message=message, origin=payload.origin)
                except Exception as e:
                    # Capture while the page is still open; the session closes right after.
                    return self._failure(page, payload, e)
        except Exception as e:
            return self._failure(None, payload, e)

    def _failure(self, page: Optional[Page], payload: DianTokenEmailPayload, error: Exception) -> DianTokenEmailResult:
        logger.error("DIAN token request failed: %s", error)
        screenshot = None
        if page is not None:
            if self.config.debug.enabled:
                save_debug_artifacts(page, debug_dir=self.config.debug.dir, name_prefix="dian_token_email_failure")
            if self.config.debug.screenshot_on_error:
                screenshot = screenshot_base64(page)
        return DianTokenEmailResult(success=False, error=str(error), origin=payload.origin, screenshot=screenshot)

    def _request_token(self, page: Page, payload: DianTokenEmailPayload) -> str:
        guard = ModalGuard(self.selectors)
        guard.install(page)

        page.goto(self.urls.company_login, wait_until="domcontentloaded", timeout=60_000)
        guard.wait_until_ready(page)

        self._fill_and_submit(page, payload)

        poller = OutcomePoller(
            PlaywrightOutcomeProbe(page, guard=guard, selectors=self.selectors),
            timeout_seconds=self.result_timeout_seconds,
            interval_seconds=self.poll_interval_seconds,
            sleep=lambda s: page.wait_for_timeout(s * 1000),
        )
        return poller.await_outcome()

    def _fill_and_submit(self, page: Page, payload: DianTokenEmailPayload) -> None:
        sel = self.selectors

        legal_rep = page.locator(sel.legal_representative_button)
        legal_rep.wait_for(state="visible")
        # The option is clickable before its handlers are bound.
        page.wait_for_timeout(5000)
        click_with_force_fallback(legal_rep, timeout_ms=10_000, what="legal representative option")
        page.wait_for_timeout(2000)

        logger.info("Waiting for the login form...")
        page.wait_for_selector(sel.form, state="visible")

        logger.info("Filling login form...")
        page.select_option(sel.identification_type, str(payload.identificationType))
        page.fill(sel.user_code, str(payload.userCode))
        page.fill(sel.company_code, str(payload.companyCode))

        logger.info("Solving Turnstile captcha...")
        token = solve_turnstile(page, solver=self.solver, selectors=sel)
        if not token:
            raise ChallengeUnresolvedError("No se pudo resolver el captcha Turnstile")

        logger.info("Captcha solved; submitting form.")
        page.wait_for_timeout(1000)
        click_with_force_fallback(page.locator(sel.submit_button), timeout_ms=5000, what="submit button")
