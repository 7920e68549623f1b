from __future__ import annotations

import logging
from typing import Any, Callable, Iterable, Optional, Sequence

from playwright.sync_api import Page

from ..browser.debug import save_debug_artifacts
from ..browser.proxies import ProxyConfig
from ..browser.session import BrowserSession
from ..config import AppConfig
from ..errors import PageStateError, PayloadValidationError, RecordNotFoundError, UpstreamUnavailableError
from ..models import CategorySearchResult, EconomicActivity, RecordCategory, RuesPayload, RuesRecord
from ..util.retry import retry_until_nonempty
from ..util.text import clean_text, normalize_key
from .selectors import RuesSelectors


logger = logging.getLogger(__name__)


RUES_URL = "https://www.rues.org.co/"
DEFAULT_CATEGORIES: tuple[RecordCategory, ...] = (
    RecordCategory.PRIMARY_REGISTRY,
    RecordCategory.NON_PROFIT_REGISTRY,
    RecordCategory.SOLIDARITY_REGISTRY,
)


# In-page helpers. They return raw label/value text; key normalisation happens in Python.
JS_CLICK_VISIBLE_SUBMIT = """(selector) => {
    for (const button of document.querySelectorAll(selector)) {
        if (window.getComputedStyle(button).display !== 'none') {
            button.click();
            return true;
        }
    }
    return false;
}"""

JS_SPINNER_PRESENT = """({ button, spinner }) => {
    for (const el of document.querySelectorAll(button)) {
        if (window.getComputedStyle(el).display !== 'none') {
            return el.querySelector(spinner) !== null;
        }
    }
    return false;
}"""

JS_SPINNER_GONE = """({ button, spinner }) => {
    for (const el of document.querySelectorAll(button)) {
        if (window.getComputedStyle(el).display !== 'none') {
            return el.querySelector(spinner) === null;
        }
    }
    return false;
}"""

JS_NO_RESULTS = """({ selector, text }) =>
    Array.from(document.querySelectorAll(selector)).some(m => (m.textContent || '').includes(text))"""

JS_COUNT = "(selector) => document.querySelectorAll(selector).length"

JS_CARD_SPANS = """(selector) => Array.from(document.querySelectorAll(selector)).map(
    card => Array.from(card.querySelectorAll('span')).map(s => (s.textContent || '').trim())
)"""

JS_CARD_SUMMARY = """({ selector, index, title, row, label }) => {
    const card = document.querySelectorAll(selector)[index];
    if (!card) return null;
    const fields = [];
    for (const rec of card.querySelectorAll(row)) {
        const l = rec.querySelector(label);
        const v = rec.querySelector('span');
        if (l && v) fields.push([(l.textContent || '').trim(), (v.textContent || '').trim()]);
    }
    const t = card.querySelector(title);
    return { title: t ? (t.textContent || '') : null, fields };
}"""

JS_TAB_PAIRS = """({ tab, row, label, value }) => {
    const pane = document.querySelector(tab);
    if (!pane) return null;
    const pairs = [];
    for (const rec of pane.querySelectorAll(row)) {
        const l = rec.querySelector(label);
        const v = rec.querySelector(value);
        if (l && v) pairs.push([(l.textContent || '').trim(), (v.textContent || '').trim()]);
    }
    return pairs;
}"""

JS_CLICK = """(selector) => {
    const el = document.querySelector(selector);
    if (!el) return false;
    el.click();
    return true;
}"""

JS_TEXT_IN = """({ tab, selector }) => {
    const pane = document.querySelector(tab);
    const el = pane ? pane.querySelector(selector) : null;
    return el ? (el.textContent || '') : '';
}"""


def pick_active_card(card_spans: Sequence[Sequence[str]], *, active_text: str = "Activa") -> int:
    """
    Index of the first card showing an "Activa" status; otherwise the last card. -1 if there are none.

    Duplicates are common (e.g. a cancelled and a current registration for the same NIT).
    """
    for idx, spans in enumerate(card_spans):
        if any((s or "").strip() == active_text for s in spans):
            return idx
    return len(card_spans) - 1


def fields_from_pairs(pairs: Optional[Iterable[Sequence[str]]]) -> dict[str, str]:
    out: dict[str, str] = {}
    for pair in pairs or []:
        if len(pair) < 2:
            continue
        key = normalize_key(pair[0])
        if not key:
            continue
        out[key] = clean_text(pair[1])
    return out


def activities_from_pairs(pairs: Optional[Iterable[Sequence[str]]]) -> list[EconomicActivity]:
    out: list[EconomicActivity] = []
    for pair in pairs or []:
        if len(pair) < 2:
            continue
        code = clean_text(pair[0])
        if not code:
            continue
        out.append(EconomicActivity(ciiu=code, description=clean_text(pair[1])))
    return out


def build_record(
    *,
    summary: dict[str, str],
    general: dict[str, str],
    activities: list[EconomicActivity],
    legal_representative: str,
    category: RecordCategory,
) -> RuesRecord:
    data: dict[str, Any] = dict(summary)
    data.update(
        {
            "informacion_general": general,
            "actividad_economica": activities,
            "representante_legal": clean_text(legal_representative),
        }
    )
    # The card may show its own "tipo" label; the registry we searched is authoritative.
    data["tipo_empresa"] = category.label
    return RuesRecord.model_validate(data)


class RuesSearchClient:
    """
    Look up a NIT/identification on rues.org.co across the registry categories.

    For each category: pick it in the form, submit, wait for the search button's spinner to
    clear, and check for results. The first category with results wins; its active card is opened
    and the summary + detail tabs are merged into a `RuesRecord`.
    """

    def __init__(
        self,
        *,
        config: AppConfig,
        selectors: Optional[RuesSelectors] = None,
        url: str = RUES_URL,
        categories: Sequence[RecordCategory] = DEFAULT_CATEGORIES,
        proxy: Optional[ProxyConfig] = None,
        session_factory: Callable[..., Any] = BrowserSession,
        action_pause_ms: int = 1000,
        spinner_appear_timeout_ms: int = 3000,
        spinner_clear_timeout_ms: int = 60_000,
        detail_timeout_ms: int = 10_000,
        tab_settle_ms: int = 2000,
        tab_attempts: int = 3,
        tab_retry_delay_seconds: float = 3,
    ) -> None:
        self.config = config
        self.selectors = selectors or RuesSelectors()
        self.url = url
        self.categories = tuple(categories)
        self.proxy = proxy
        self._session_factory = session_factory
        self.action_pause_ms = action_pause_ms
        self.spinner_appear_timeout_ms = spinner_appear_timeout_ms
        self.spinner_clear_timeout_ms = spinner_clear_timeout_ms
        self.detail_timeout_ms = detail_timeout_ms
        self.tab_settle_ms = tab_settle_ms
        self.tab_attempts = tab_attempts
        self.tab_retry_delay_seconds = tab_retry_delay_seconds

    def run(self, payload: RuesPayload) -> RuesRecord:
        identification = (payload.identificationNumber or "").strip()
        if not identification:
            raise PayloadValidationError("La identificación es requerida.", missing_fields=["identificationNumber"])

        logger.info("RUES lookup for identification=%s", identification)
        with self._session_factory(config=self.config.browser, headless=payload.headless, proxy=self.proxy) as session:
            page = session.new_page()
            try:
                page.goto(self.url, wait_until="networkidle")
                record = self.search_by_identification(page, identification)
            except Exception:
                if self.config.debug.enabled:
                    save_debug_artifacts(page, debug_dir=self.config.debug.dir, name_prefix="rues_failure")
                raise
        logger.info("RUES lookup succeeded (tipo_empresa=%s)", record.tipo_empresa)
        return record

    def search_by_identification(self, page: Page, identification: str) -> RuesRecord:
        attempts: list[CategorySearchResult] = []
        for category in self.categories:
            logger.info("Searching registry: %s", category.label)
            result = self.search_category(page, identification, category)
            attempts.append(result)

            if not result.api_responded:
                logger.warning("RUES did not respond for %s; trying the next registry.", category.value)
                continue
            if result.record_found and result.record is not None:
                return result.record
            logger.info("Not found in %s", category.value)

        searched = ", ".join(c.value for c in self.categories)
        if attempts and not any(a.api_responded for a in attempts):
            raise UpstreamUnavailableError(
                f"No se pudo consultar el documento {identification}. La API de RUES no está respondiendo. "
                "Por favor intente más tarde."
            )
        raise RecordNotFoundError(f"Documento {identification} no encontrado en ningún tipo de registro ({searched}).")

    def search_category(self, page: Page, identification: str, category: RecordCategory) -> CategorySearchResult:
        self._dismiss_alert(page)
        self._pause(page, self.action_pause_ms)
        self._select_category(page, category)

        if not self._submit_search(page, identification):
            return CategorySearchResult(category=category, api_responded=False)

        if not self._has_results(page):
            return CategorySearchResult(category=category, api_responded=True, record_found=False)

        logger.info("Document found; extracting details...")
        record = self._extract_record(page, category)
        return CategorySearchResult(category=category, api_responded=True, record_found=True, record=record)

    # ---- search form -------------------------------------------------------------------------

    def _pause(self, page: Page, ms: int) -> None:
        if ms > 0:
            page.wait_for_timeout(ms)

    def _dismiss_alert(self, page: Page) -> bool:
        """
        Best-effort SweetAlert dismissal; absence is not an error.
        """
        sel = self.selectors
        try:
            self._pause(page, self.action_pause_ms)
            if page.locator(sel.alert_container).count() == 0:
                return False
            close = page.locator(sel.alert_close)
            if close.count() > 0:
                close.first.click()
            else:
                page.keyboard.press("Escape")
            self._pause(page, self.action_pause_ms)
            return True
        except Exception:
            logger.debug("Failed to dismiss alert.", exc_info=True)
            return False

    def _select_category(self, page: Page, category: RecordCategory) -> None:
        page.wait_for_selector(self.selectors.type_selector)
        select = page.locator(self.selectors.type_selector)
        if select.count() == 0:
            raise PageStateError("No se encontró ningún elemento select")
        select.first.select_option(category.value)

    def _submit_search(self, page: Page, identification: str) -> bool:
        """
        Fill + submit, then wait for the search to finish.

        Returns True when the search API answered (with or without results), False when the
        button spinner never cleared or there was no visible button to click.
        """
        sel = self.selectors
        page.wait_for_selector(sel.id_input)
        id_input = page.locator(sel.id_input)
        id_input.fill("")
        id_input.fill(identification)

        if not page.evaluate(JS_CLICK_VISIBLE_SUBMIT, sel.submit_button):
            logger.warning("No visible search button found.")
            return False

        spinner_arg = {"button": sel.submit_button, "spinner": sel.submit_spinner}
        try:
            page.wait_for_function(JS_SPINNER_PRESENT, arg=spinner_arg, timeout=self.spinner_appear_timeout_ms)
            logger.debug("Search started (spinner visible).")
        except Exception:
            logger.debug("No spinner seen on the search button (search may have finished already).")

        try:
            page.wait_for_function(JS_SPINNER_GONE, arg=spinner_arg, timeout=self.spinner_clear_timeout_ms)
        except Exception:
            logger.warning("Search spinner did not clear after %.0fs.", self.spinner_clear_timeout_ms / 1000)
            self._dismiss_alert(page)
            return False

        # Results render shortly after the spinner goes away.
        self._pause(page, 2 * self.action_pause_ms)
        return True

    def _has_results(self, page: Page) -> bool:
        sel = self.selectors
        try:
            if page.evaluate(JS_NO_RESULTS, {"selector": sel.no_results_message, "text": sel.no_results_text}):
                return False
            return int(page.evaluate(JS_COUNT, sel.results) or 0) > 0
        except Exception:
            logger.debug("Could not verify search results.", exc_info=True)
            return False

    # ---- detail extraction -------------------------------------------------------------------

    def _extract_record(self, page: Page, category: RecordCategory) -> RuesRecord:
        sel = self.selectors
        page.wait_for_selector(sel.results)

        card_index = pick_active_card(page.evaluate(JS_CARD_SPANS, sel.results) or [], active_text=sel.active_status_text)
        if card_index < 0:
            raise PageStateError("Card no encontrada")

        summary = self._read_summary(page, card_index)

        # A card can hold several anchors; the first one opens the detail view.
        page.locator(sel.results).nth(card_index).locator(sel.result_link).first.click()
        self._wait_for_detail(page)

        general = fields_from_pairs(page.evaluate(JS_TAB_PAIRS, self._tab_arg(sel.tabs.general)))

        self._open_tab(page, sel.tabs.economic_tab)
        activities = (
            retry_until_nonempty(
                lambda: self._read_economic_activities(page),
                attempts=self.tab_attempts,
                delay_seconds=self.tab_retry_delay_seconds,
                sleep=lambda s: self._pause(page, int(s * 1000)),
                what="economic activity tab",
            )
            or []
        )

        self._open_tab(page, sel.tabs.representative_tab)
        legal_rep = (
            retry_until_nonempty(
                lambda: self._read_legal_representative(page),
                attempts=self.tab_attempts,
                delay_seconds=self.tab_retry_delay_seconds,
                sleep=lambda s: self._pause(page, int(s * 1000)),
                what="legal representative tab",
            )
            or ""
        )

        return build_record(
            summary=summary,
            general=general,
            activities=activities,
            legal_representative=legal_rep,
            category=category,
        )

    def _read_summary(self, page: Page, card_index: int) -> dict[str, str]:
        sel = self.selectors
        raw = page.evaluate(
            JS_CARD_SUMMARY,
            {
                "selector": sel.results,
                "index": card_index,
                "title": sel.card_title,
                "row": sel.field_row,
                "label": sel.field_label,
            },
        )
        if not raw:
            raise PageStateError("No se encontró contenedor de resultados")

        summary = fields_from_pairs(raw.get("fields"))
        title = raw.get("title")
        if title is not None:
            summary["nombre"] = clean_text(title)
        return summary

    def _wait_for_detail(self, page: Page) -> None:
        # Only the general tab is rendered up front; the others mount when their trigger is clicked.
        try:
            page.wait_for_selector(self.selectors.tabs.general, timeout=self.detail_timeout_ms)
        except Exception as e:
            raise PageStateError("No se pudo cargar la página de detalles") from e
        self._pause(page, self.action_pause_ms)

    def _tab_arg(self, tab: str) -> dict[str, str]:
        sel = self.selectors
        return {"tab": tab, "row": sel.field_row, "label": sel.field_label, "value": sel.field_value}

    def _open_tab(self, page: Page, trigger: str) -> None:
        if page.evaluate(JS_CLICK, trigger):
            self._pause(page, self.tab_settle_ms)
        else:
            logger.debug("Tab trigger %s not found.", trigger)

    def _read_economic_activities(self, page: Page) -> list[EconomicActivity]:
        return activities_from_pairs(page.evaluate(JS_TAB_PAIRS, self._tab_arg(self.selectors.tabs.economic)))

    def _read_legal_representative(self, page: Page) -> str:
        sel = self.selectors
        text = page.evaluate(JS_TEXT_IN, {"tab": sel.tabs.representative, "selector": sel.legal_representative_text})
        return clean_text(text)
