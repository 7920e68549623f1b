from .retry import retry_until_nonempty
from .text import clean_text, normalize_key, strip_accents

__all__ = ["retry_until_nonempty", "clean_text", "normalize_key", "strip_accents"]
