"""Cart engine exceptions"""

from typing import Optional


class CartError(Exception):
    """Base exception for cart engine errors"""
    pass


# ==================== Contract violations ====================


class CartContractError(CartError):
    """A caller broke the engine's contract; the operation is aborted"""
    pass


class CurrencyMismatchError(CartContractError):
    """Item currency differs from the currency of a non-empty cart"""

    def __init__(self, cart_currency: str, item_currency: str):
        self.cart_currency = cart_currency
        self.item_currency = item_currency
        super().__init__(
            f"Cart is priced in {cart_currency}, cannot add an item priced in {item_currency}"
        )


class UnknownCurrencyError(CartContractError):
    """Currency code has no known minor unit"""
    pass


class UnknownSellerPolicyError(CartContractError):
    """No shipping/pricing policy exists for a seller"""

    def __init__(self, seller_id: str):
        self.seller_id = seller_id
        super().__init__(f"No seller policy configured for seller {seller_id}")


class ItemNotFoundError(CartContractError):
    """No line item exists for a (product, seller) pair"""

    def __init__(self, product_id: str, seller_id: str):
        self.product_id = product_id
        self.seller_id = seller_id
        super().__init__(f"Item {product_id} from seller {seller_id} is not in the cart")


class InvalidQuantityError(CartContractError, ValueError):
    """Quantity outside the range an operation accepts"""
    pass


class CartNotFoundError(CartContractError):
    """Mutation issued against a cart that does not exist"""

    def __init__(self, buyer_id: str):
        self.buyer_id = buyer_id
        super().__init__(f"No cart exists for buyer {buyer_id}")


# ==================== Persistence gateway ====================


class GatewayError(CartError):
    """Base exception for persistence gateway failures"""
    pass


class GatewayTransientError(GatewayError):
    """Timeout, connection failure or 5xx; safe to retry"""
    pass


class GatewayRejectedError(GatewayError):
    """The server refused the request; its answer is authoritative"""

    def __init__(self, status_code: int, detail: Optional[str] = None):
        self.status_code = status_code
        self.detail = detail
        super().__init__(f"Cart request rejected: {status_code} - {detail}")
