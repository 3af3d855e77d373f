"""
Cart Pricing

Pure derivation of seller groups and totals from cart source data.

Rounding happens once per seller group and once per cart-level component
(fee, tax). The grand total is the sum of already rounded parts, so the
lines a buyer sees always add up.
"""

import logging
from decimal import Decimal
from typing import Iterable, Sequence

from ..models.cart import Cart, CartItem, CartState, SellerGroup
from ..models.notices import CartNotice
from ..models.policy import PricingPolicy
from ..money import normalize_currency, round_money, zero

logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")


def group_by_seller(items: Iterable[CartItem]) -> list[list[CartItem]]:
    """Partition items by seller, keeping first-seen seller order"""
    groups: dict[str, list[CartItem]] = {}
    for item in items:
        groups.setdefault(item.seller_id, []).append(item)
    return list(groups.values())


def raw_subtotal(items: Iterable[CartItem]) -> Decimal:
    """Unrounded sum of effective price x quantity"""
    return sum((item.total_price for item in items), Decimal("0"))


def derive_cart(
    state: CartState,
    policy: PricingPolicy,
    notices: Sequence[CartNotice] = (),
) -> Cart:
    """
    Build a full cart snapshot from source data.

    Args:
        state: Cart items and identity
        policy: Fee, tax and per-seller shipping policy
        notices: Advisories to attach to the snapshot

    Returns:
        Cart with groups and totals recomputed from scratch

    Raises:
        UnknownCurrencyError: currency has no known minor unit
        UnknownSellerPolicyError: an item's seller has no policy
    """
    currency = normalize_currency(state.currency or policy.currency)

    groups: list[SellerGroup] = []
    unrounded_subtotal = Decimal("0")
    for items in group_by_seller(state.items):
        first = items[0]
        seller_policy = policy.seller_policy(first.seller_id)

        group_raw = raw_subtotal(items)
        unrounded_subtotal += group_raw
        subtotal = round_money(group_raw, currency)
        shipping = round_money(seller_policy.shipping_estimate, currency)

        groups.append(
            SellerGroup(
                seller_id=first.seller_id,
                seller_name=first.seller_name,
                items=list(items),
                subtotal=subtotal,
                estimated_shipping=shipping,
                total=subtotal + shipping,
                minimum_order_amount=round_money(seller_policy.minimum_order_amount, currency),
            )
        )

    empty = zero(currency)
    subtotal = round_money(sum((g.subtotal for g in groups), empty), currency)
    shipping = sum((g.estimated_shipping for g in groups), empty)

    if groups:
        platform_fee = round_money(unrounded_subtotal * policy.platform_fee_percent / HUNDRED, currency)
        tax = round_money((subtotal + shipping) * policy.tax_rate_percent / HUNDRED, currency)
    else:
        platform_fee = empty
        tax = empty

    total = subtotal + platform_fee + shipping + tax

    logger.debug(
        f"Cart {state.cart_id}: subtotal={subtotal} fee={platform_fee} "
        f"shipping={shipping} tax={tax} total={total} {currency}"
    )

    return Cart(
        id=state.cart_id,
        buyer_id=state.buyer_id,
        seller_groups=groups,
        total_items=sum(item.quantity for item in state.items),
        unique_products=len(state.items),
        subtotal=subtotal,
        platform_fee_percent=policy.platform_fee_percent,
        platform_fee_amount=platform_fee,
        estimated_shipping=shipping,
        estimated_tax=tax,
        total=total,
        currency=currency,
        revision=state.revision,
        updated_at=state.updated_at,
        last_synced_at=state.last_synced_at,
        notices=list(notices),
    )
