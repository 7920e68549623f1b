from __future__ import annotations

from dian_rues_portal.dian.certificate_login import classify_login, looks_like_certificate_warning


def test_classify_login() -> None:
    login_url = "https://certificate-vpfe.dian.gov.co/User/CertificateLogin"
    assert classify_login("https://catalogo-vpfe.dian.gov.co/Dashboard", "") == "success"
    assert classify_login(login_url, "Bienvenido al sistema") == "success"
    assert classify_login(login_url, "Resuelva el captcha") == "captcha"
    assert classify_login(login_url, "Documento incorrecto") == "invalid_data"
    assert classify_login(login_url, "Cargando...") == "unknown"


def test_certificate_warning_detection() -> None:
    assert looks_like_certificate_warning("", "chrome-error://chromewebdata/")
    assert looks_like_certificate_warning("<h1>Your connection is not private</h1>", "https://x")
    assert looks_like_certificate_warning("NET::ERR_CERT_AUTHORITY_INVALID", "https://x")
    assert not looks_like_certificate_warning("<form id='form0'></form>", "https://certificate-vpfe.dian.gov.co")
