from __future__ import annotations

import logging
from typing import Callable, Optional, TypeVar

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import Page

from .modal_guard import DEFAULT_MODAL_ERROR, ModalGuard, ModalGuardState
from .outcome import PageGoneError
from .selectors import DianSelectors


logger = logging.getLogger(__name__)
T = TypeVar("T")

MSG_CHECK_CREDENTIALS = "Verifique las credenciales de inicio de sesión."

_PAGE_CLOSED_MARKERS = (
    "Target page, context or browser has been closed",
    "Target closed",
)
# The page is still there but navigating; a new document (and context) follows.
_CONTEXT_RESET_MARKERS = ("Execution context was destroyed",)


def looks_like_page_closed(message: str) -> bool:
    return any(m in (message or "") for m in _PAGE_CLOSED_MARKERS)


def looks_like_context_reset(message: str) -> bool:
    return any(m in (message or "") for m in _CONTEXT_RESET_MARKERS)


def looks_like_page_gone(message: str) -> bool:
    return looks_like_page_closed(message) or looks_like_context_reset(message)


_IS_MODAL_VISIBLE_JS = """(modal) => {
    const style = window.getComputedStyle(modal);
    const ariaHidden = modal.getAttribute('aria-hidden');
    const hasInClass = modal.classList.contains('in');
    return (style.display !== 'none' || hasInClass) && ariaHidden !== 'true';
}"""

_IS_DISPLAYED_JS = """(el) => {
    const style = window.getComputedStyle(el);
    return style.display !== 'none' && style.visibility !== 'hidden';
}"""


class PlaywrightOutcomeProbe:
    """
    `OutcomeProbe` backed by a live DIAN company-login page.
    """

    def __init__(self, page: Page, *, guard: ModalGuard, selectors: Optional[DianSelectors] = None) -> None:
        self.page = page
        self.guard = guard
        self.selectors = selectors or guard.selectors

    def _read(self, fn: Callable[[], T]) -> T:
        try:
            return fn()
        except PlaywrightError as e:
            if looks_like_page_gone(str(e)):
                raise PageGoneError(str(e)) from e
            raise

    def _read_guard(self, fn: Callable[[], Optional[T]]) -> Optional[T]:
        """
        Guard reads tolerate a navigation in flight: they come back empty and the next tick
        reads the sessionStorage mirror from the new document. A closed page is still fatal.
        """
        try:
            return fn()
        except PlaywrightError as e:
            if looks_like_page_closed(str(e)):
                raise PageGoneError(str(e)) from e
            if looks_like_context_reset(str(e)):
                logger.debug("Guard read interrupted by navigation: %s", e)
                return None
            raise

    def _text_of(self, selector: str) -> str:
        el = self.page.query_selector(selector)
        if el is None:
            return ""
        return (el.inner_text() or "").strip()

    def consume_stored_error(self) -> Optional[str]:
        return self._read_guard(lambda: self.guard.consume_stored_error(self.page))

    def guard_state(self) -> Optional[ModalGuardState]:
        return self._read_guard(lambda: self.guard.read_state(self.page))

    def visible_modal_error(self) -> Optional[str]:
        def _modal() -> Optional[str]:
            modal = self.page.query_selector(self.selectors.error_modal)
            if modal is None:
                return None
            if not modal.evaluate(_IS_MODAL_VISIBLE_JS):
                return None

            parts = []
            for sel in (self.selectors.error_modal_title, self.selectors.error_modal_message):
                try:
                    txt = self.page.eval_on_selector(sel, "(el) => (el.textContent || '').trim()")
                except PlaywrightError as e:
                    if looks_like_page_gone(str(e)):
                        raise
                    txt = ""
                if txt:
                    parts.append(txt)
            return " - ".join(parts) or DEFAULT_MODAL_ERROR

        return self._read(_modal)

    def success_text(self) -> Optional[str]:
        return self._read(lambda: self._text_of(self.selectors.success_alert)) or None

    def error_text(self) -> Optional[str]:
        for sel in (self.selectors.error_alert, self.selectors.toast_message):
            text = self._read(lambda: self._text_of(sel))
            if text:
                return text
        return None

    def body_error_hint(self) -> Optional[str]:
        body = self._read(lambda: self.page.evaluate("() => document.body?.innerText || ''")) or ""
        if "credenciales" in body or "incorrect" in body:
            return MSG_CHECK_CREDENTIALS
        return None

    def is_closed(self) -> bool:
        return self.page.is_closed()

    def returned_to_start(self) -> bool:
        def _visible() -> bool:
            el = self.page.query_selector(self.selectors.legal_representative_button)
            if el is None:
                return False
            return bool(el.evaluate(_IS_DISPLAYED_JS))

        return self._read(_visible)
