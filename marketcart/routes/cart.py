"""Cart API routes for UI collaborators"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from pydantic import BaseModel, Field

from ..core.config import settings
from ..core.session import CartSession, CartSessionManager
from ..errors import (
    CartContractError,
    CartNotFoundError,
    CurrencyMismatchError,
    ItemNotFoundError,
)
from ..models.cart import Cart, CartSummary
from ..models.product import ProductListing, SellerInfo
from ..services.gateway import HttpCartGateway

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/cart", tags=["Cart"])

# Initialized lazily; replaced through dependency overrides in tests
session_manager: Optional[CartSessionManager] = None


def get_session_manager() -> CartSessionManager:
    """Get or create the cart session manager"""
    global session_manager
    if session_manager is None:
        gateway_factory = None
        if settings.gateway_configured:
            def gateway_factory(buyer_id: str) -> HttpCartGateway:
                return HttpCartGateway(
                    base_url=settings.gateway_base_url,
                    access_token=settings.gateway_access_token,
                    timeout=settings.gateway_timeout_seconds,
                )
        session_manager = CartSessionManager(settings, gateway_factory=gateway_factory)
    return session_manager


def get_buyer_id(x_buyer_id: str = Header(...)) -> str:
    """Extract buyer ID from header"""
    return x_buyer_id


class AddToCartRequest(BaseModel):
    """Request to add a listing to the cart"""
    product: ProductListing
    seller: SellerInfo
    quantity: int = Field(default=1, gt=0)


class UpdateCartItemRequest(BaseModel):
    """Request to update item quantity; 0 removes the item"""
    quantity: int = Field(ge=0)


class CartResponse(BaseModel):
    """Cart API response"""
    cart: Cart
    message: Optional[str] = None
    sync_status: Optional[str] = None


def _response(session: CartSession, cart: Cart, message: Optional[str] = None) -> CartResponse:
    sync_status = session.synchronizer.status.value if session.synchronizer else None
    return CartResponse(cart=cart, message=message, sync_status=sync_status)


def _http_error(error: CartContractError) -> HTTPException:
    """Map engine contract violations to HTTP errors"""
    if isinstance(error, (ItemNotFoundError, CartNotFoundError)):
        return HTTPException(status_code=404, detail=str(error))
    if isinstance(error, CurrencyMismatchError):
        return HTTPException(status_code=409, detail=str(error))
    return HTTPException(status_code=422, detail=str(error))


@router.get("", response_model=CartResponse)
async def get_cart(
    buyer_id: str = Depends(get_buyer_id),
    manager: CartSessionManager = Depends(get_session_manager),
):
    """Get the buyer's cart, creating an empty one on first use"""
    session = await manager.open_session(buyer_id)
    return _response(session, session.engine.get_snapshot())


@router.get("/summary", response_model=CartSummary)
async def get_cart_summary(
    buyer_id: str = Depends(get_buyer_id),
    manager: CartSessionManager = Depends(get_session_manager),
):
    """Item count and total for navigation badges"""
    session = await manager.open_session(buyer_id)
    return CartSummary.from_cart(session.engine.get_snapshot())


@router.post("/items", response_model=CartResponse)
async def add_to_cart(
    request: AddToCartRequest,
    buyer_id: str = Depends(get_buyer_id),
    manager: CartSessionManager = Depends(get_session_manager),
):
    """Add an item to the cart"""
    session = await manager.open_session(buyer_id)
    try:
        cart = session.engine.add_item(request.product, request.seller, request.quantity)
    except CartContractError as e:
        raise _http_error(e)

    return _response(
        session,
        cart,
        message=f"Added {request.quantity}x {request.product.product_name} to cart",
    )


@router.patch("/items/{seller_id}/{product_id}", response_model=CartResponse)
async def update_cart_item(
    seller_id: str,
    product_id: str,
    request: UpdateCartItemRequest,
    buyer_id: str = Depends(get_buyer_id),
    manager: CartSessionManager = Depends(get_session_manager),
):
    """Update item quantity in cart"""
    try:
        session = manager.require_session(buyer_id)
        cart = session.engine.update_quantity(product_id, seller_id, request.quantity)
    except CartContractError as e:
        raise _http_error(e)

    session.touch()
    return _response(session, cart, message="Cart updated")


@router.delete("/items/{seller_id}/{product_id}", response_model=CartResponse)
async def remove_from_cart(
    seller_id: str,
    product_id: str,
    buyer_id: str = Depends(get_buyer_id),
    manager: CartSessionManager = Depends(get_session_manager),
):
    """Remove an item from the cart"""
    try:
        session = manager.require_session(buyer_id)
    except CartNotFoundError as e:
        raise _http_error(e)

    cart = session.engine.remove_item(product_id, seller_id)
    session.touch()
    return _response(session, cart, message="Item removed")


@router.delete("", response_model=CartResponse)
async def clear_cart(
    buyer_id: str = Depends(get_buyer_id),
    manager: CartSessionManager = Depends(get_session_manager),
):
    """Clear all items from cart"""
    try:
        session = manager.require_session(buyer_id)
    except CartNotFoundError as e:
        raise _http_error(e)

    cart = session.engine.clear()
    session.touch()
    return _response(session, cart, message="Cart cleared")


@router.post("/sync", response_model=CartResponse)
async def sync_cart(
    buyer_id: str = Depends(get_buyer_id),
    manager: CartSessionManager = Depends(get_session_manager),
):
    """Push pending changes to the server and return the reconciled cart"""
    try:
        session = manager.require_session(buyer_id)
    except CartNotFoundError as e:
        raise _http_error(e)

    if session.synchronizer is None:
        return _response(session, session.engine.get_snapshot(), message="Sync disabled")

    cart = await session.synchronizer.flush()
    return _response(session, cart, message=session.synchronizer.last_error)
