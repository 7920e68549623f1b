from __future__ import annotations

from dian_rues_portal.util.text import clean_text, normalize_key, strip_accents


def test_normalize_key_lowercases_and_strips_accents() -> None:
    assert normalize_key("  Número de Matrícula  ") == "numero_de_matricula"
    assert normalize_key("Cámara de Comercio:") == "camara_de_comercio"


def test_normalize_key_collapses_separators() -> None:
    assert normalize_key("Tipo  de\tSociedad") == "tipo_de_sociedad"
    assert normalize_key("Fecha - Renovación") == "fecha_renovacion"
    assert normalize_key("   ") == ""


def test_strip_accents_keeps_base_letters() -> None:
    assert strip_accents("ÁÉÍÓÚ ñ ü") == "AEIOU n u"


def test_clean_text() -> None:
    assert clean_text("  PEREZ\n  JUAN   ") == "PEREZ JUAN"
    assert clean_text(None) == ""
