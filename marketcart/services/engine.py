"""
Cart Aggregation Engine

Owns one buyer's cart. Every mutation is a pure transformation
(CartState, MutationOp) -> CartState; the engine object only holds the
current state, the pricing policy and the operation counter, and derives a
fresh snapshot after each step.
"""

import logging
import uuid
from dataclasses import replace
from datetime import datetime
from typing import Callable, Optional, Sequence

from ..errors import (
    CartContractError,
    CurrencyMismatchError,
    InvalidQuantityError,
    ItemNotFoundError,
)
from ..models.cart import Cart, CartItem, CartState, utcnow
from ..models.notices import (
    CartNotice,
    ChangeRejectedNotice,
    ItemRemovedNotice,
    PriceChangedNotice,
    RemovalReason,
    StockLimitedWarning,
)
from ..models.operations import MutationOp, OperationType
from ..models.policy import PricingPolicy
from ..models.product import ProductListing, SellerInfo
from ..models.remote import Rejection, RemoteCart
from ..money import normalize_currency
from .pricing import derive_cart

logger = logging.getLogger(__name__)

OperationListener = Callable[[MutationOp], None]
StepResult = tuple[CartState, list[CartNotice]]


# ==================== Pure transformations ====================


def apply_operation(
    state: CartState,
    op: MutationOp,
    policy: PricingPolicy,
    now: Optional[datetime] = None,
) -> StepResult:
    """
    Apply one mutation to a cart state.

    Returns the new state and any advisories. When the operation changes
    nothing the very same state object is returned.

    Raises:
        CartContractError: the operation breaks the engine's contract; the
            input state is left as it was
    """
    now = now or utcnow()

    if op.type == OperationType.ADD_ITEM:
        return _add_item(state, op, policy, now)
    if op.type == OperationType.UPDATE_QUANTITY:
        return _update_quantity(state, op.product_id, op.seller_id, op.quantity, now)
    if op.type == OperationType.REMOVE_ITEM:
        return _remove_item(state, op.product_id, op.seller_id, now)
    if op.type == OperationType.CLEAR:
        if not state.items:
            return state, []
        return replace(state, items=(), updated_at=now), []

    raise CartContractError(f"Unsupported operation type: {op.type}")


def _add_item(state: CartState, op: MutationOp, policy: PricingPolicy, now: datetime) -> StepResult:
    product: Optional[ProductListing] = op.product
    seller: Optional[SellerInfo] = op.seller
    if product is None or seller is None:
        raise CartContractError("add_item requires a product listing and a seller")

    quantity = op.quantity if op.quantity is not None else 1
    if quantity < 1:
        raise InvalidQuantityError(f"Quantity must be at least 1, got {quantity}")

    currency = normalize_currency(product.currency)
    policy.seller_policy(seller.seller_id)
    if state.items and state.currency != currency:
        raise CurrencyMismatchError(state.currency, currency)

    existing = state.find(product.product_id, seller.seller_id)
    requested = quantity + (existing.quantity if existing else 0)
    available = product.stock_quantity
    notices: list[CartNotice] = []

    if requested > available:
        notices.append(
            StockLimitedWarning(
                product_id=product.product_id,
                seller_id=seller.seller_id,
                requested_quantity=requested,
                available_quantity=available,
            )
        )
        logger.warning(
            f"Clamping {product.product_id} from seller {seller.seller_id}: "
            f"requested {requested}, available {available}"
        )

    if available < 1:
        if existing is None:
            return state, notices
        notices.append(
            ItemRemovedNotice(
                product_id=existing.product_id,
                seller_id=existing.seller_id,
                reason=RemovalReason.OUT_OF_STOCK,
            )
        )
        items = tuple(item for item in state.items if item.key != existing.key)
        return replace(state, items=items, updated_at=now), notices

    granted = min(requested, available)

    if existing:
        if product.price != existing.unit_price:
            notices.append(
                PriceChangedNotice(
                    product_id=existing.product_id,
                    seller_id=existing.seller_id,
                    previous_price=existing.unit_price,
                    current_price=product.price,
                )
            )
        updated = existing.model_copy(
            update={
                "quantity": granted,
                "stock_quantity": available,
                "sale_price": product.sale_price,
                "stock_limited": granted < requested,
            }
        )
        items = tuple(updated if item.key == existing.key else item for item in state.items)
    else:
        item = CartItem(
            product_id=product.product_id,
            product_name=product.product_name,
            product_sku=product.product_sku,
            unit_price=product.price,
            sale_price=product.sale_price,
            quantity=granted,
            stock_quantity=available,
            unit_of_measurement=product.unit_of_measurement,
            currency=currency,
            image_url=product.image_url,
            seller_id=seller.seller_id,
            seller_name=seller.seller_name,
            added_at=now,
            stock_limited=granted < requested,
        )
        items = state.items + (item,)

    return replace(state, items=items, currency=currency, updated_at=now), notices


def _update_quantity(
    state: CartState,
    product_id: Optional[str],
    seller_id: Optional[str],
    quantity: Optional[int],
    now: datetime,
) -> StepResult:
    if quantity is None or quantity < 0:
        raise InvalidQuantityError(f"Quantity must be zero or more, got {quantity}")

    existing = state.find(product_id, seller_id)
    if existing is None:
        raise ItemNotFoundError(product_id, seller_id)

    if quantity == 0:
        return _remove_item(state, product_id, seller_id, now)

    notices: list[CartNotice] = []
    granted = min(quantity, existing.stock_quantity)
    if granted < quantity:
        notices.append(
            StockLimitedWarning(
                product_id=product_id,
                seller_id=seller_id,
                requested_quantity=quantity,
                available_quantity=existing.stock_quantity,
            )
        )

    if granted == existing.quantity and existing.stock_limited == (granted < quantity):
        return state, notices

    updated = existing.model_copy(update={"quantity": granted, "stock_limited": granted < quantity})
    items = tuple(updated if item.key == existing.key else item for item in state.items)
    return replace(state, items=items, updated_at=now), notices


def _remove_item(
    state: CartState,
    product_id: Optional[str],
    seller_id: Optional[str],
    now: datetime,
) -> StepResult:
    if state.find(product_id, seller_id) is None:
        return state, []

    items = tuple(item for item in state.items if item.key != (product_id, seller_id))
    return replace(state, items=items, updated_at=now), []


def state_from_remote(
    remote: RemoteCart,
    previous: CartState,
    now: Optional[datetime] = None,
) -> StepResult:
    """
    Rebuild cart state from the server copy.

    Server stock figures act as ceilings: quantities above them are clamped
    and lines with no stock left are removed with a notice. Lines priced in
    another currency than the cart are removed as well.
    """
    now = now or utcnow()
    currency = normalize_currency(remote.currency)
    notices: list[CartNotice] = []
    items: list[CartItem] = []

    for line in remote.items:
        if (line.currency or "").strip().upper() != currency:
            logger.warning(
                f"Dropping server line {line.product_id}/{line.seller_org_id}: "
                f"priced in {line.currency}, cart is in {currency}"
            )
            notices.append(
                ItemRemovedNotice(
                    product_id=line.product_id,
                    seller_id=line.seller_org_id,
                    reason=RemovalReason.CURRENCY_MISMATCH,
                    detail=f"Priced in {line.currency}, cart is in {currency}",
                )
            )
            continue
        if line.stock_quantity < 1:
            notices.append(
                ItemRemovedNotice(
                    product_id=line.product_id,
                    seller_id=line.seller_org_id,
                    reason=RemovalReason.OUT_OF_STOCK,
                )
            )
            continue
        if line.quantity < 1:
            logger.debug(f"Skipping empty server line {line.product_id}/{line.seller_org_id}")
            continue

        granted = min(line.quantity, line.stock_quantity)
        if granted < line.quantity:
            notices.append(
                StockLimitedWarning(
                    product_id=line.product_id,
                    seller_id=line.seller_org_id,
                    requested_quantity=line.quantity,
                    available_quantity=line.stock_quantity,
                )
            )

        old = previous.find(line.product_id, line.seller_org_id)
        item = CartItem(
            product_id=line.product_id,
            product_name=line.product_name,
            product_sku=line.product_sku,
            unit_price=line.unit_price,
            sale_price=line.sale_price,
            quantity=granted,
            stock_quantity=line.stock_quantity,
            unit_of_measurement=line.unit_of_measurement,
            currency=currency,
            image_url=line.image_url,
            seller_id=line.seller_org_id,
            seller_name=line.seller_name,
            added_at=line.added_at or (old.added_at if old else now),
            stock_limited=granted < line.quantity,
        )
        if old is not None and old.effective_unit_price != item.effective_unit_price:
            notices.append(
                PriceChangedNotice(
                    product_id=item.product_id,
                    seller_id=item.seller_id,
                    previous_price=old.effective_unit_price,
                    current_price=item.effective_unit_price,
                )
            )
        items.append(item)

    state = CartState(
        cart_id=remote.id,
        buyer_id=previous.buyer_id,
        currency=currency,
        items=tuple(items),
        revision=remote.revision,
        created_at=previous.created_at,
        updated_at=remote.updated_at or now,
        last_synced_at=now,
    )
    return state, notices


def apply_rejections(
    state: CartState,
    rejections: list[Rejection],
    now: Optional[datetime] = None,
) -> StepResult:
    """Apply per-line server refusals: clamp when stock remains, otherwise remove"""
    now = now or utcnow()
    notices: list[CartNotice] = []
    items = list(state.items)
    changed = False

    for rejection in rejections:
        key = (rejection.product_id, rejection.seller_org_id)
        index = next((i for i, item in enumerate(items) if item.key == key), None)
        if index is None:
            continue

        item = items[index]
        changed = True
        available = rejection.available_quantity or 0
        if rejection.reason == RemovalReason.OUT_OF_STOCK and available > 0:
            granted = min(item.quantity, available)
            items[index] = item.model_copy(
                update={
                    "quantity": granted,
                    "stock_quantity": available,
                    "stock_limited": granted < item.quantity,
                }
            )
            if granted < item.quantity:
                notices.append(
                    StockLimitedWarning(
                        product_id=item.product_id,
                        seller_id=item.seller_id,
                        requested_quantity=item.quantity,
                        available_quantity=available,
                    )
                )
            continue

        logger.warning(f"Server removed {item.product_id} from seller {item.seller_id}: {rejection.reason.value}")
        del items[index]
        notices.append(
            ItemRemovedNotice(
                product_id=item.product_id,
                seller_id=item.seller_id,
                reason=rejection.reason,
                detail=rejection.detail,
            )
        )

    if not changed:
        return state, notices
    return replace(state, items=tuple(items), updated_at=now), notices


def _rejected_notice(op: MutationOp, detail: Optional[str]) -> ChangeRejectedNotice:
    return ChangeRejectedNotice(
        operation=op.type.value,
        product_id=op.product_id,
        seller_id=op.seller_id,
        detail=detail,
    )


# ==================== Engine ====================


class CartEngine:
    """
    Single source of truth for one buyer's cart.

    Mutators run synchronously to completion and are not re-entrant; the
    caller serializes calls per engine. Each successful mutation is assigned
    the next operation sequence number and handed to subscribed listeners
    (normally the synchronizer).
    """

    def __init__(
        self,
        buyer_id: str,
        policy: PricingPolicy,
        cart_id: Optional[str] = None,
    ):
        self._state = CartState(cart_id=cart_id or str(uuid.uuid4()), buyer_id=buyer_id)
        self._policy = policy
        self._op_seq = 0
        self._notices: list[CartNotice] = []
        self._listeners: list[OperationListener] = []

    @property
    def state(self) -> CartState:
        return self._state

    @property
    def policy(self) -> PricingPolicy:
        return self._policy

    @property
    def cart_id(self) -> str:
        return self._state.cart_id

    @property
    def buyer_id(self) -> str:
        return self._state.buyer_id

    @property
    def last_op_seq(self) -> int:
        """Sequence number of the most recent applied local mutation"""
        return self._op_seq

    def subscribe(self, listener: OperationListener) -> None:
        """Register a callback invoked with every applied mutation"""
        self._listeners.append(listener)

    # ==================== Mutators ====================

    def add_item(self, product: ProductListing, seller: SellerInfo, quantity: int = 1) -> Cart:
        """Add a listing to the cart, merging with an existing line for the same seller"""
        return self._apply(
            OperationType.ADD_ITEM,
            product_id=product.product_id,
            seller_id=seller.seller_id,
            quantity=quantity,
            product=product,
            seller=seller,
        )

    def update_quantity(self, product_id: str, seller_id: str, new_quantity: int) -> Cart:
        """Set a line's quantity; 0 removes the line"""
        return self._apply(
            OperationType.UPDATE_QUANTITY,
            product_id=product_id,
            seller_id=seller_id,
            quantity=new_quantity,
        )

    def remove_item(self, product_id: str, seller_id: str) -> Cart:
        """Remove a line; removing an absent line is a no-op"""
        return self._apply(OperationType.REMOVE_ITEM, product_id=product_id, seller_id=seller_id)

    def clear(self) -> Cart:
        """Empty the cart, keeping its identity"""
        return self._apply(OperationType.CLEAR)

    def recompute(self) -> Cart:
        """Derive groups and totals from the current state"""
        return derive_cart(self._state, self._policy, self._notices)

    def get_snapshot(self) -> Cart:
        """Current cart view for rendering"""
        return self.recompute()

    def set_policy(self, policy: PricingPolicy) -> Cart:
        self._policy = policy
        return self.recompute()

    def _apply(self, op_type: OperationType, **fields) -> Cart:
        op = MutationOp(seq=self._op_seq + 1, type=op_type, **fields)
        state, notices = apply_operation(self._state, op, self._policy)
        self._notices = notices

        if state is self._state:
            logger.debug(f"Cart {self.cart_id}: {op_type.value} changed nothing")
            return self.recompute()

        self._state = state
        self._op_seq = op.seq
        logger.debug(f"Cart {self.cart_id}: applied op #{op.seq} {op_type.value}")

        snapshot = self.recompute()
        for listener in self._listeners:
            listener(op)
        return snapshot

    # ==================== Reconciliation ====================

    def replace_from_server(self, remote: RemoteCart, rejections: Sequence[Rejection] = ()) -> Cart:
        """Adopt the server copy wholesale, clamped to server stock"""
        _, rejection_notices = apply_rejections(self._state, list(rejections))
        state, notices = state_from_remote(remote, self._state)
        state, _ = apply_rejections(state, list(rejections))
        notices = rejection_notices + notices

        policy = self._policy.with_seller_shipping(remote.shipping_by_seller)
        if remote.platform_fee_percent is not None:
            policy = policy.with_platform_fee(remote.platform_fee_percent)

        cart = derive_cart(state, policy, notices)
        self._policy = policy
        self._state = state
        self._notices = notices
        logger.info(f"Cart {self.cart_id}: adopted server revision {remote.revision}")
        return cart

    def apply_rejections(self, rejections: list[Rejection]) -> Cart:
        """Apply authoritative per-line refusals to local state"""
        state, notices = apply_rejections(self._state, rejections)
        if state is not self._state:
            self._state = state
            self._notices = notices
        return self.recompute()

    def rebase(
        self,
        remote: RemoteCart,
        ops: list[MutationOp],
        rejected: Sequence[MutationOp] = (),
        detail: Optional[str] = None,
    ) -> list[MutationOp]:
        """
        Roll back to the server copy and replay local operations on top.

        Args:
            remote: Server copy to roll back to
            ops: Local operations to replay, oldest first
            rejected: Operations the server refused; each gets a notice
            detail: Server's reason for the refusal

        Operations that no longer apply (e.g. updating a line the server
        removed) are dropped with a notice as well.

        Returns:
            The operations that were replayed successfully
        """
        self.replace_from_server(remote)
        notices = list(self._notices)
        notices.extend(_rejected_notice(op, detail) for op in rejected)
        replayed: list[MutationOp] = []

        for op in ops:
            try:
                state, op_notices = apply_operation(self._state, op, self._policy)
            except CartContractError as e:
                logger.warning(f"Cart {self.cart_id}: dropping op #{op.seq} after rollback: {e}")
                notices.append(_rejected_notice(op, str(e)))
                continue
            self._state = state
            notices.extend(op_notices)
            replayed.append(op)

        self._notices = notices
        return replayed
