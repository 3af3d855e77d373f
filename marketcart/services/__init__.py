# Cart services

from .pricing import derive_cart, group_by_seller
from .engine import CartEngine, apply_operation, apply_rejections, state_from_remote
from .gateway import CartGateway, HttpCartGateway
from .sync import CartSynchronizer, SyncStatus

__all__ = [
    "derive_cart",
    "group_by_seller",
    "CartEngine",
    "apply_operation",
    "apply_rejections",
    "state_from_remote",
    "CartGateway",
    "HttpCartGateway",
    "CartSynchronizer",
    "SyncStatus",
]
