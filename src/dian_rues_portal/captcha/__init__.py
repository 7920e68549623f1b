from .providers import AntiCaptchaProvider, TwoCaptchaProvider
from .solver import ChallengeSolver

__all__ = ["ChallengeSolver", "AntiCaptchaProvider", "TwoCaptchaProvider"]
