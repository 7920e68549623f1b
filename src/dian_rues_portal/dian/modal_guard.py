from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Optional

from playwright.sync_api import Page

from .selectors import DianSelectors


logger = logging.getLogger(__name__)


STATE_GLOBAL = "__dianModalState"
STORAGE_KEY = "__dianModalError"
DEFAULT_MODAL_ERROR = "Se presentó un error en el portal de la DIAN."

# Navigation API `navigationType` -> the Location method that usually triggers it.
NAVIGATION_ACTIONS = {"push": "assign", "replace": "replace", "reload": "reload", "traverse": "traverse"}


# The DIAN portal sometimes shows #errorModal and fires location.assign/replace/reload in the
# same tick. The guard records the modal text (also in sessionStorage, which survives the reload)
# and swallows navigations while the modal is visible so the error is not lost.
_INIT_SCRIPT_TEMPLATE = """
(() => {
  const cfg = __CONFIG__;
  if (window[cfg.stateGlobal]) {
    return;
  }

  const setup = () => {
    if (window[cfg.stateGlobal]) {
      return;
    }
    const state = { lastError: null, blockedRedirects: [] };
    window[cfg.stateGlobal] = state;

    try {
      const stored = sessionStorage.getItem(cfg.storageKey);
      if (stored) {
        state.lastError = stored;
      }
    } catch (_) {}

    const isModalVisible = () => {
      const modal = document.querySelector(cfg.modal);
      if (!modal) return false;
      const style = window.getComputedStyle(modal);
      const ariaHidden = modal.getAttribute('aria-hidden');
      const hasInClass = modal.classList.contains('in');
      return (style.display !== 'none' || hasInClass) && ariaHidden !== 'true';
    };

    const captureModal = () => {
      if (!isModalVisible()) {
        return;
      }
      const title = (document.querySelector(cfg.title)?.textContent || '').trim();
      const message = (document.querySelector(cfg.message)?.textContent || '').trim();
      const text = [title, message].filter(Boolean).join(' - ') || cfg.defaultError;
      state.lastError = text;
      try {
        sessionStorage.setItem(cfg.storageKey, text);
      } catch (_) {}
    };

    new MutationObserver(() => captureModal()).observe(document.documentElement, {
      childList: true,
      subtree: true,
      attributes: true,
      attributeFilter: ['style', 'class', 'aria-hidden'],
    });
    captureModal();

    const block = (name, args) => {
      state.blockedRedirects.push({ fn: name, ts: Date.now(), args: args.map(a => String(a)) });
      console.warn(`[DIAN][ModalGuard] navigation blocked (${name}).`);
    };

    // location.assign/replace/reload are unforgeable, so the Navigation API is where
    // script-initiated navigations can actually be cancelled.
    const nav = window.navigation;
    if (nav && typeof nav.addEventListener === 'function') {
      nav.addEventListener('navigate', (event) => {
        captureModal();
        if (!event.cancelable || !isModalVisible()) {
          return;
        }
        event.preventDefault();
        block(cfg.navigationTypes[event.navigationType] || event.navigationType, [event.destination.url]);
      });
    }

    const wrap = (original, name) => (...args) => {
      captureModal();
      if (isModalVisible()) {
        block(name, args);
        return undefined;
      }
      return original(...args);
    };

    // Only takes effect in engines that let Location methods be replaced.
    for (const name of ['assign', 'replace', 'reload']) {
      try {
        const loc = window.location;
        const wrapped = wrap(loc[name].bind(loc), name);
        loc[name] = wrapped;
      } catch (_) {}
    }
  };

  if (document.readyState === 'loading') {
    document.addEventListener('DOMContentLoaded', setup, { once: true });
  } else {
    setup();
  }
})();
"""


def build_init_script(selectors: DianSelectors) -> str:
    cfg = {
        "stateGlobal": STATE_GLOBAL,
        "storageKey": STORAGE_KEY,
        "modal": selectors.error_modal,
        "title": selectors.error_modal_title,
        "message": selectors.error_modal_message,
        "defaultError": DEFAULT_MODAL_ERROR,
        "navigationTypes": NAVIGATION_ACTIONS,
    }
    return _INIT_SCRIPT_TEMPLATE.replace("__CONFIG__", json.dumps(cfg, ensure_ascii=False))


@dataclass(frozen=True)
class BlockedTransition:
    action: str
    timestamp: int
    arguments: tuple[str, ...] = ()


@dataclass(frozen=True)
class ModalGuardState:
    last_error: Optional[str] = None
    blocked_transitions: tuple[BlockedTransition, ...] = ()

    @classmethod
    def from_js(cls, raw: Any) -> Optional["ModalGuardState"]:
        if not isinstance(raw, dict):
            return None
        blocked = []
        for item in raw.get("blockedRedirects") or []:
            if not isinstance(item, dict):
                continue
            blocked.append(
                BlockedTransition(
                    action=str(item.get("fn") or ""),
                    timestamp=int(item.get("ts") or 0),
                    arguments=tuple(str(a) for a in (item.get("args") or [])),
                )
            )
        last_error = raw.get("lastError")
        return cls(last_error=str(last_error) if last_error else None, blocked_transitions=tuple(blocked))


class ModalGuard:
    """
    Installs the error-modal observer into pages and reads back what it captured.

    Installing twice on the same page is a no-op (both here and inside the page, where the
    state object doubles as the "already installed" marker).
    """

    def __init__(self, selectors: Optional[DianSelectors] = None) -> None:
        self.selectors = selectors or DianSelectors()
        self._script = build_init_script(self.selectors)
        self._installed: list[Page] = []

    @property
    def script(self) -> str:
        return self._script

    def is_installed(self, page: Page) -> bool:
        return any(p is page for p in self._installed)

    def install(self, page: Page) -> bool:
        if self.is_installed(page):
            logger.debug("Modal guard already installed on this page.")
            return False
        page.add_init_script(script=self._script)
        self._installed.append(page)
        return True

    def wait_until_ready(self, page: Page, *, timeout_ms: int = 30_000) -> bool:
        try:
            page.wait_for_function(f"() => typeof window.{STATE_GLOBAL} !== 'undefined'", timeout=timeout_ms)
            return True
        except Exception as e:
            logger.warning("Modal guard did not initialise in time: %s", e)
            return False

    def read_state(self, page: Page) -> Optional[ModalGuardState]:
        raw = page.evaluate(f"() => window.{STATE_GLOBAL} ?? null")
        return ModalGuardState.from_js(raw)

    def consume_stored_error(self, page: Page) -> Optional[str]:
        """
        Read and clear the error persisted in sessionStorage (survives full reloads).
        """
        value = page.evaluate(
            """(key) => {
                const value = sessionStorage.getItem(key);
                if (value) {
                    sessionStorage.removeItem(key);
                }
                return value;
            }""",
            STORAGE_KEY,
        )
        return str(value) if value else None
