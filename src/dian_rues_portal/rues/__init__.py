from .client import DEFAULT_CATEGORIES, RuesSearchClient, pick_active_card
from .selectors import RuesSelectors

__all__ = ["RuesSearchClient", "RuesSelectors", "DEFAULT_CATEGORIES", "pick_active_card"]
