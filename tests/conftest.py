"""Pytest configuration and fixtures"""

import asyncio
from decimal import Decimal
from typing import Optional

import pytest

from marketcart.models import (
    Cart,
    CartState,
    MutationOp,
    PersistResult,
    PricingPolicy,
    ProductListing,
    Rejection,
    RemoteCart,
    RemoteCartItem,
    RemoteSellerGroup,
    SellerInfo,
    SellerPolicy,
)
from marketcart.services.engine import CartEngine, apply_operation, apply_rejections
from marketcart.services.gateway import CartGateway
from marketcart.services.pricing import derive_cart


def make_listing(
    product_id: str,
    price: str,
    stock: int = 100,
    currency: str = "USD",
    sale_price: Optional[str] = None,
) -> ProductListing:
    return ProductListing(
        product_id=product_id,
        product_name=f"Product {product_id}",
        price=Decimal(price),
        sale_price=Decimal(sale_price) if sale_price is not None else None,
        currency=currency,
        stock_quantity=stock,
        unit_of_measurement="kg",
    )


def remote_from_cart(cart: Cart, revision: int) -> RemoteCart:
    """Wire representation the backend would send for a cart"""
    return RemoteCart(
        id=cart.id,
        revision=revision,
        currency=cart.currency,
        platform_fee_percent=cart.platform_fee_percent,
        seller_groups=[
            RemoteSellerGroup(
                seller_org_id=group.seller_id,
                seller_name=group.seller_name,
                estimated_shipping=group.estimated_shipping,
                items=[
                    RemoteCartItem(
                        product_id=item.product_id,
                        product_name=item.product_name,
                        unit_price=item.unit_price,
                        sale_price=item.sale_price,
                        quantity=item.quantity,
                        currency=item.currency,
                        stock_quantity=item.stock_quantity,
                        unit_of_measurement=item.unit_of_measurement,
                        seller_org_id=item.seller_id,
                        seller_name=item.seller_name,
                        added_at=item.added_at,
                    )
                    for item in group.items
                ],
            )
            for group in cart.seller_groups
        ],
    )


class FakeGateway(CartGateway):
    """
    In-memory cart backend.

    Applies persisted operations with the same pure transformations the
    engine uses, skipping idempotency keys it has already seen. With
    `hold()` every persist call blocks until `release()` is called.
    Queued `rejections` are returned with the next successful persist and
    taken out of the server copy.
    """

    def __init__(self, cart_id: str, buyer_id: str, policy: PricingPolicy):
        self.state = CartState(cart_id=cart_id, buyer_id=buyer_id)
        self.policy = policy
        self.revision = 0
        self.seen_keys: set[str] = set()
        self.calls: list[list[MutationOp]] = []
        self.failures: list[Exception] = []
        self.rejections: list[Rejection] = []
        self.fetch_count = 0
        self._held = False
        self._gates: list[asyncio.Event] = []
        self._call_started = asyncio.Event()

    def hold(self) -> None:
        self._held = True

    def release(self) -> None:
        """Let the oldest blocked persist call finish"""
        gate = self._gates.pop(0)
        gate.set()

    async def wait_for_calls(self, count: int) -> None:
        while len(self.calls) < count:
            self._call_started.clear()
            await self._call_started.wait()

    def remote(self) -> RemoteCart:
        return remote_from_cart(derive_cart(self.state, self.policy), self.revision)

    async def fetch_cart(self) -> RemoteCart:
        self.fetch_count += 1
        return self.remote()

    async def persist(self, operations: list[MutationOp]) -> PersistResult:
        self.calls.append(list(operations))
        self._call_started.set()

        if self._held:
            gate = asyncio.Event()
            self._gates.append(gate)
            await gate.wait()

        if self.failures:
            raise self.failures.pop(0)

        for op in operations:
            if op.idempotency_key in self.seen_keys:
                continue
            self.seen_keys.add(op.idempotency_key)
            self.state, _ = apply_operation(self.state, op, self.policy)

        rejections, self.rejections = self.rejections, []
        self.state, _ = apply_rejections(self.state, rejections)
        self.revision += 1

        return PersistResult(cart=self.remote(), rejections=rejections)


@pytest.fixture
def seller_a():
    return SellerInfo(seller_id="S1", seller_name="Caribbean Farms Co.")


@pytest.fixture
def seller_b():
    return SellerInfo(seller_id="S2", seller_name="Island Produce Ltd.")


@pytest.fixture
def policy():
    """5% platform fee, no shipping or tax"""
    return PricingPolicy(
        currency="USD",
        platform_fee_percent=Decimal("5"),
        seller_policies={
            "S1": SellerPolicy(),
            "S2": SellerPolicy(),
        },
    )


@pytest.fixture
def engine(policy):
    return CartEngine(buyer_id="buyer-123", policy=policy, cart_id="cart-123")


@pytest.fixture
def p1():
    return make_listing("P1", "10.00", stock=10)


@pytest.fixture
def p2():
    return make_listing("P2", "5.00", stock=10)


@pytest.fixture
def p3():
    return make_listing("P3", "20.00", stock=10)


@pytest.fixture
def fake_gateway(engine, policy):
    return FakeGateway(cart_id=engine.cart_id, buyer_id=engine.buyer_id, policy=policy)


async def no_sleep(delay: float) -> None:
    return None


def assert_consistent(cart: Cart) -> None:
    """Totals identities every snapshot must satisfy"""
    assert cart.total == (
        cart.subtotal + cart.platform_fee_amount + cart.estimated_shipping + cart.estimated_tax
    )
    assert cart.subtotal == sum((g.subtotal for g in cart.seller_groups), Decimal("0"))
    for group in cart.seller_groups:
        assert group.total == group.subtotal + group.estimated_shipping
        assert group.items
    for item in cart.items:
        assert 1 <= item.quantity <= item.stock_quantity

