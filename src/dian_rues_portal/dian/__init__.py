from .certificate_login import DianCertificateLoginClient
from .modal_guard import ModalGuard, ModalGuardState
from .outcome import OutcomePoller
from .selectors import DianSelectors, DianUrls
from .token_email import DianTokenEmailClient

__all__ = [
    "DianCertificateLoginClient",
    "DianTokenEmailClient",
    "DianSelectors",
    "DianUrls",
    "ModalGuard",
    "ModalGuardState",
    "OutcomePoller",
]
