# Core modules

from .config import settings, get_settings, Settings
from .session import CartSession, CartSessionManager

__all__ = ["settings", "get_settings", "Settings", "CartSession", "CartSessionManager"]
