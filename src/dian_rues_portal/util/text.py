from __future__ import annotations

import re
import unicodedata


_NON_WORD_RE = re.compile(r"[^\w\s]")
_WS_RE = re.compile(r"\s+")
_MULTI_UNDERSCORE_RE = re.compile(r"__+")


def strip_accents(value: str) -> str:
    decomposed = unicodedata.normalize("NFD", value or "")
    return "".join(ch for ch in decomposed if unicodedata.category(ch) != "Mn")


def normalize_key(label: str) -> str:
    """
    Turn a displayed label into a record key:
    - "  Número de Matrícula  " -> "numero_de_matricula"
    - "Cámara de Comercio:" -> "camara_de_comercio"
    """
    s = strip_accents((label or "").strip().lower())
    s = _NON_WORD_RE.sub("", s)
    s = _WS_RE.sub("_", s.strip())
    return _MULTI_UNDERSCORE_RE.sub("_", s)


def clean_text(value: object) -> str:
    return _WS_RE.sub(" ", str(value or "")).strip()
