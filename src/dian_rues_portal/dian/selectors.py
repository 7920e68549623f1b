from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class DianSelectors:
    """
    DIAN "catalogo-vpfe" / "certificate-vpfe" pages; selectors may change over time.
    Keep all UI selectors/text hooks here for easy maintenance.
    """

    # Company login (token by email)
    legal_representative_button: str = "#legalRepresentative"
    form: str = "#form0"
    identification_type: str = "#CompanyIdentificationType"
    user_code: str = "#UserCode"
    company_code: str = "#CompanyCode"
    submit_button: str = "#form0 button.btn.btn-primary"

    # Cloudflare Turnstile
    captcha_container: str = ".cf-turnstile"
    captcha_response_input: str = 'input[name="cf-turnstile-response"]'

    # Result signals
    error_modal: str = "#errorModal"
    error_modal_title: str = "#errorModal-title"
    error_modal_message: str = "#errorModal-message"
    success_alert: str = ".dian-alert-info p"
    error_alert: str = ".dian-alert-danger p"
    toast_message: str = ".toast-message"

    # Certificate login
    certificate_submit_button: str = "button.btn-primary"
    interstitial_advanced_button: str = 'button#details-button, button[id*="details"], a#details-button'
    interstitial_proceed_link: str = 'a#proceed-link, a[id*="proceed"], button[id*="proceed"]'


@dataclass(frozen=True)
class DianUrls:
    company_login: str = "https://catalogo-vpfe.dian.gov.co/User/CompanyLogin"
    certificate_login: str = "https://certificate-vpfe.dian.gov.co/User/CertificateLogin"
    # Origins that must receive the client certificate during certificate login.
    certificate_origins: tuple[str, ...] = (
        "https://certificate-vpfe.dian.gov.co",
        "https://catalogo-vpfe.dian.gov.co",
        "https://vpfe.dian.gov.co",
    )
