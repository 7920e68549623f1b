from __future__ import annotations

import logging
from typing import Optional

from playwright.sync_api import Locator, Page

from ..captcha.solver import ChallengeSolver
from ..errors import PageStateError
from .selectors import DianSelectors


logger = logging.getLogger(__name__)


_INJECT_TOKEN_JS = """({ selector, solution }) => {
    const field = document.querySelector(selector);
    if (field) {
        field.value = solution;
        field.dispatchEvent(new Event('input', { bubbles: true }));
        field.dispatchEvent(new Event('change', { bubbles: true }));
    }
}"""


def solve_turnstile(
    page: Page,
    *,
    solver: ChallengeSolver,
    selectors: DianSelectors,
    timeout_ms: int = 90_000,
) -> Optional[str]:
    """
    Solve the page's Turnstile widget through the provider chain and write the token into the
    hidden `cf-turnstile-response` field. Returns None when no provider could solve it.
    """
    page.wait_for_selector(selectors.captcha_container, state="visible", timeout=timeout_ms)
    site_key = page.get_attribute(selectors.captcha_container, "data-sitekey")
    if not site_key:
        raise PageStateError("No se pudo obtener el sitekey del captcha")

    token = solver.solve(site_key, page.url)
    if not token:
        return None

    page.wait_for_selector(selectors.captcha_response_input, state="attached")
    page.evaluate(_INJECT_TOKEN_JS, {"selector": selectors.captcha_response_input, "solution": token})
    logger.info("Captcha token injected into the form.")
    return token


def click_with_force_fallback(locator: Locator, *, timeout_ms: int, what: str) -> None:
    """
    Click normally; if something overlays the element (or it never becomes actionable), force it.
    """
    try:
        locator.click(timeout=timeout_ms)
    except Exception as e:
        logger.warning("Click on %s failed (%s); retrying with force.", what, e)
        locator.click(force=True)
