from __future__ import annotations

import base64
import logging
import re
from pathlib import Path
from typing import Optional

from playwright.sync_api import Page


logger = logging.getLogger(__name__)


def _safe_name(name: str) -> str:
    return re.sub(r"[^a-zA-Z0-9_-]+", "_", name).strip("_")[:60] or "debug"


def save_debug_artifacts(page: Optional[Page], *, debug_dir: str, name_prefix: str) -> None:
    """
    Best-effort: screenshot + HTML + rendered body text, so a failed run can be inspected offline.
    """
    if page is None:
        return
    prefix = _safe_name(name_prefix)
    try:
        out_dir = Path(debug_dir)
        out_dir.mkdir(parents=True, exist_ok=True)
        page.screenshot(path=str(out_dir / f"{prefix}.png"), full_page=True)
        (out_dir / f"{prefix}.html").write_text(page.content(), encoding="utf-8")
        try:
            (out_dir / f"{prefix}.txt").write_text(page.inner_text("body"), encoding="utf-8")
        except Exception:
            pass
    except Exception:
        logger.debug("Failed to save debug artifacts.", exc_info=True)


def screenshot_base64(page: Optional[Page], *, full_page: bool = True) -> Optional[str]:
    if page is None:
        return None
    try:
        return base64.b64encode(page.screenshot(full_page=full_page)).decode("ascii")
    except Exception as e:
        logger.warning("Could not capture screenshot: %s", e)
        return None
