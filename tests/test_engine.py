"""
Tests for the cart aggregation engine
"""

import random
from decimal import Decimal

import pytest

from marketcart.errors import (
    CartContractError,
    CurrencyMismatchError,
    InvalidQuantityError,
    ItemNotFoundError,
    UnknownSellerPolicyError,
)
from marketcart.models import (
    ChangeRejectedNotice,
    ItemRemovedNotice,
    MutationOp,
    OperationType,
    PriceChangedNotice,
    Rejection,
    RemovalReason,
    SellerInfo,
    StockLimitedWarning,
)
from marketcart.services.engine import apply_operation

from conftest import assert_consistent, make_listing, remote_from_cart


class TestAddItem:
    """Tests for adding listings"""

    def test_reference_scenario(self, engine, seller_a, seller_b, p1, p2, p3):
        engine.add_item(p1, seller_a, 3)
        engine.add_item(p2, seller_a, 2)
        cart = engine.add_item(p3, seller_b, 1)

        assert [g.seller_id for g in cart.seller_groups] == ["S1", "S2"]
        assert cart.subtotal == Decimal("60.00")
        assert cart.platform_fee_amount == Decimal("3.00")
        assert cart.total == Decimal("63.00")

        cart = engine.update_quantity("P1", "S1", 0)

        assert cart.find_item("P1", "S1") is None
        assert cart.find_group("S1").subtotal == Decimal("10.00")
        assert cart.subtotal == Decimal("30.00")
        assert_consistent(cart)

    def test_merges_existing_line(self, engine, seller_a, p1):
        engine.add_item(p1, seller_a, 2)
        cart = engine.add_item(p1, seller_a, 3)

        assert cart.unique_products == 1
        assert cart.find_item("P1", "S1").quantity == 5

    def test_same_product_from_two_sellers_is_two_lines(self, engine, seller_a, seller_b, p1):
        engine.add_item(p1, seller_a, 1)
        cart = engine.add_item(p1, seller_b, 1)

        assert cart.unique_products == 2
        assert len(cart.seller_groups) == 2

    def test_clamps_to_stock_with_warning(self, engine, seller_a):
        listing = make_listing("P9", "4.00", stock=5)

        cart = engine.add_item(listing, seller_a, 8)

        item = cart.find_item("P9", "S1")
        assert item.quantity == 5
        assert item.stock_limited
        assert len(cart.notices) == 1
        warning = cart.notices[0]
        assert isinstance(warning, StockLimitedWarning)
        assert warning.requested_quantity == 8
        assert warning.available_quantity == 5

    def test_merge_beyond_stock_clamps(self, engine, seller_a):
        listing = make_listing("P9", "4.00", stock=5)
        engine.add_item(listing, seller_a, 4)

        cart = engine.add_item(listing, seller_a, 4)

        assert cart.find_item("P9", "S1").quantity == 5
        assert cart.notices[0].requested_quantity == 8

    def test_zero_stock_leaves_cart_unchanged(self, engine, seller_a):
        ops = []
        engine.subscribe(ops.append)

        cart = engine.add_item(make_listing("P9", "4.00", stock=0), seller_a, 1)

        assert cart.is_empty
        assert isinstance(cart.notices[0], StockLimitedWarning)
        assert ops == []
        assert engine.last_op_seq == 0

    def test_price_change_on_merge(self, engine, seller_a):
        engine.add_item(make_listing("P1", "10.00"), seller_a, 1)

        cart = engine.add_item(make_listing("P1", "12.00"), seller_a, 1)

        notice = cart.notices[0]
        assert isinstance(notice, PriceChangedNotice)
        assert notice.previous_price == Decimal("10.00")
        assert notice.current_price == Decimal("12.00")
        # the snapshot price is kept
        assert cart.find_item("P1", "S1").unit_price == Decimal("10.00")

    def test_sale_price_refreshed_on_merge(self, engine, seller_a):
        engine.add_item(make_listing("P1", "10.00"), seller_a, 1)

        cart = engine.add_item(make_listing("P1", "10.00", sale_price="7.50"), seller_a, 1)

        assert cart.find_item("P1", "S1").total_price == Decimal("15.00")

    def test_sold_out_listing_removes_existing_line(self, engine, seller_a, p2):
        ops = []
        engine.subscribe(ops.append)
        engine.add_item(make_listing("P1", "10.00", stock=10), seller_a, 2)
        engine.add_item(p2, seller_a, 1)

        cart = engine.add_item(make_listing("P1", "10.00", stock=0), seller_a, 1)

        assert cart.find_item("P1", "S1") is None
        assert cart.find_item("P2", "S1").quantity == 1
        removed = [n for n in cart.notices if isinstance(n, ItemRemovedNotice)]
        assert removed[0].reason == RemovalReason.OUT_OF_STOCK
        assert [op.seq for op in ops] == [1, 2, 3]
        assert_consistent(cart)

    def test_currency_mismatch(self, engine, seller_a, p1):
        engine.add_item(p1, seller_a, 1)
        before = engine.get_snapshot()

        with pytest.raises(CurrencyMismatchError):
            engine.add_item(make_listing("P9", "1000", currency="JPY"), seller_a, 1)

        assert engine.get_snapshot().total == before.total
        assert engine.last_op_seq == 1

    def test_empty_cart_adopts_item_currency(self, engine, seller_a):
        cart = engine.add_item(make_listing("P9", "1000", currency="jpy"), seller_a, 1)

        assert cart.currency == "JPY"
        assert str(cart.subtotal) == "1000"

    def test_unknown_seller_policy(self, engine, p1):
        with pytest.raises(UnknownSellerPolicyError):
            engine.add_item(p1, SellerInfo(seller_id="S9", seller_name="Nobody"), 1)

        assert engine.get_snapshot().is_empty

    def test_invalid_quantity(self, engine, seller_a, p1):
        with pytest.raises(InvalidQuantityError):
            engine.add_item(p1, seller_a, 0)


class TestUpdateAndRemove:
    """Tests for quantity updates, removal and clearing"""

    def test_update_missing_line(self, engine):
        with pytest.raises(ItemNotFoundError):
            engine.update_quantity("P1", "S1", 2)

    def test_update_negative_quantity(self, engine, seller_a, p1):
        engine.add_item(p1, seller_a, 1)

        with pytest.raises(InvalidQuantityError):
            engine.update_quantity("P1", "S1", -1)

    def test_update_clamps_to_stock(self, engine, seller_a, p1):
        engine.add_item(p1, seller_a, 1)

        cart = engine.update_quantity("P1", "S1", 25)

        assert cart.find_item("P1", "S1").quantity == 10
        assert cart.notices[0].available_quantity == 10

    def test_remove_is_idempotent(self, engine, seller_a, p1, p2):
        engine.add_item(p1, seller_a, 1)
        engine.add_item(p2, seller_a, 1)

        first = engine.remove_item("P1", "S1")
        seq = engine.last_op_seq
        second = engine.remove_item("P1", "S1")

        assert second.model_dump() == first.model_dump()
        assert engine.last_op_seq == seq

    def test_clear_keeps_identity(self, engine, seller_a, p1):
        engine.add_item(p1, seller_a, 2)

        cart = engine.clear()

        assert cart.is_empty
        assert cart.id == "cart-123"
        assert cart.buyer_id == "buyer-123"
        assert cart.total == Decimal("0")

    def test_clear_empty_cart_emits_nothing(self, engine):
        ops = []
        engine.subscribe(ops.append)

        engine.clear()

        assert ops == []


class TestListeners:
    """Tests for operation sequencing"""

    def test_ops_have_increasing_seq(self, engine, seller_a, p1, p2):
        ops = []
        engine.subscribe(ops.append)

        engine.add_item(p1, seller_a, 1)
        engine.add_item(p2, seller_a, 1)
        engine.update_quantity("P1", "S1", 3)
        engine.remove_item("P2", "S1")

        assert [op.seq for op in ops] == [1, 2, 3, 4]
        assert [op.type for op in ops] == [
            OperationType.ADD_ITEM,
            OperationType.ADD_ITEM,
            OperationType.UPDATE_QUANTITY,
            OperationType.REMOVE_ITEM,
        ]
        assert len({op.idempotency_key for op in ops}) == 4
        assert engine.last_op_seq == 4

    def test_failed_mutation_emits_nothing(self, engine):
        ops = []
        engine.subscribe(ops.append)

        with pytest.raises(ItemNotFoundError):
            engine.update_quantity("P1", "S1", 1)

        assert ops == []

    def test_wire_payload(self, engine, seller_a, p1):
        ops = []
        engine.subscribe(ops.append)
        engine.add_item(p1, seller_a, 2)

        wire = ops[0].to_wire()

        assert wire["op_seq"] == 1
        assert wire["type"] == "add_item"
        assert wire["seller_org_id"] == "S1"
        assert wire["quantity"] == 2
        assert wire["idempotency_key"] == ops[0].idempotency_key


class TestConsistency:
    """Totals identities hold after arbitrary mutation sequences"""

    def test_random_mutations(self, engine, seller_a, seller_b):
        rng = random.Random(42)
        sellers = [seller_a, seller_b]
        listings = [
            make_listing(f"P{i}", f"{rng.randint(1, 5000) / 100:.2f}", stock=rng.randint(1, 8))
            for i in range(6)
        ]

        for _ in range(200):
            action = rng.choice(["add", "update", "remove", "clear"])
            listing = rng.choice(listings)
            seller = rng.choice(sellers)
            try:
                if action == "add":
                    cart = engine.add_item(listing, seller, rng.randint(1, 10))
                elif action == "update":
                    cart = engine.update_quantity(listing.product_id, seller.seller_id, rng.randint(0, 10))
                elif action == "remove":
                    cart = engine.remove_item(listing.product_id, seller.seller_id)
                else:
                    cart = engine.clear() if rng.random() < 0.1 else engine.get_snapshot()
            except ItemNotFoundError:
                cart = engine.get_snapshot()

            assert_consistent(cart)
            assert cart.total_items == sum(item.quantity for item in cart.items)


class TestServerReconciliation:
    """Tests for adopting the server copy"""

    def test_replace_clamps_to_server_stock(self, engine, seller_a, p1):
        engine.add_item(p1, seller_a, 5)
        remote = remote_from_cart(engine.get_snapshot(), revision=3)
        line = remote.seller_groups[0].items[0]
        remote.seller_groups[0].items[0] = line.model_copy(update={"stock_quantity": 2})

        cart = engine.replace_from_server(remote)

        assert cart.find_item("P1", "S1").quantity == 2
        assert cart.revision == 3
        assert cart.last_synced_at is not None
        assert isinstance(cart.notices[0], StockLimitedWarning)
        assert_consistent(cart)

    def test_replace_removes_sold_out_line(self, engine, seller_a, p1, p2):
        engine.add_item(p1, seller_a, 1)
        engine.add_item(p2, seller_a, 1)
        remote = remote_from_cart(engine.get_snapshot(), revision=1)
        line = remote.seller_groups[0].items[0]
        remote.seller_groups[0].items[0] = line.model_copy(update={"stock_quantity": 0})

        cart = engine.replace_from_server(remote)

        assert cart.find_item("P1", "S1") is None
        notice = cart.notices[0]
        assert isinstance(notice, ItemRemovedNotice)
        assert notice.reason == RemovalReason.OUT_OF_STOCK

    def test_replace_adopts_server_shipping_and_fee(self, engine, seller_a, p1):
        engine.add_item(p1, seller_a, 1)
        remote = remote_from_cart(engine.get_snapshot(), revision=1)
        remote.seller_groups[0].estimated_shipping = Decimal("7.50")
        remote.platform_fee_percent = Decimal("10")

        cart = engine.replace_from_server(remote)

        assert cart.estimated_shipping == Decimal("7.50")
        assert cart.platform_fee_amount == Decimal("1.00")
        assert cart.total == Decimal("18.50")

    def test_replace_reports_price_change(self, engine, seller_a, p1):
        engine.add_item(p1, seller_a, 1)
        remote = remote_from_cart(engine.get_snapshot(), revision=1)
        line = remote.seller_groups[0].items[0]
        remote.seller_groups[0].items[0] = line.model_copy(update={"unit_price": Decimal("11.00")})

        cart = engine.replace_from_server(remote)

        assert isinstance(cart.notices[0], PriceChangedNotice)
        assert cart.subtotal == Decimal("11.00")

    def test_rejection_removes_line(self, engine, seller_a, p1, p2):
        engine.add_item(p1, seller_a, 1)
        engine.add_item(p2, seller_a, 1)

        cart = engine.apply_rejections(
            [Rejection(product_id="P1", seller_org_id="S1", reason=RemovalReason.DELISTED, detail="Listing withdrawn")]
        )

        assert cart.find_item("P1", "S1") is None
        assert cart.notices[0].reason == RemovalReason.DELISTED
        assert cart.notices[0].detail == "Listing withdrawn"

    def test_out_of_stock_rejection_with_remaining_stock_clamps(self, engine, seller_a, p1):
        engine.add_item(p1, seller_a, 6)

        cart = engine.apply_rejections(
            [Rejection(product_id="P1", seller_org_id="S1", reason=RemovalReason.OUT_OF_STOCK, available_quantity=4)]
        )

        assert cart.find_item("P1", "S1").quantity == 4
        assert isinstance(cart.notices[0], StockLimitedWarning)

    def test_rejection_for_unknown_line_is_ignored(self, engine, seller_a, p1):
        engine.add_item(p1, seller_a, 1)
        before = engine.state

        engine.apply_rejections(
            [Rejection(product_id="P7", seller_org_id="S1", reason=RemovalReason.DELISTED)]
        )

        assert engine.state is before

    def test_replace_drops_line_in_other_currency(self, engine, seller_a, p1):
        engine.add_item(p1, seller_a, 1)
        remote = remote_from_cart(engine.get_snapshot(), revision=2)
        line = remote.seller_groups[0].items[0]
        remote.seller_groups[0].items.append(
            line.model_copy(update={"product_id": "P2", "unit_price": Decimal("1000"), "currency": "JPY"})
        )

        cart = engine.replace_from_server(remote)

        assert {item.currency for item in cart.items} == {"USD"}
        assert cart.find_item("P2", "S1") is None
        assert cart.subtotal == Decimal("10.00")
        notice = cart.notices[0]
        assert isinstance(notice, ItemRemovedNotice)
        assert notice.reason == RemovalReason.CURRENCY_MISMATCH
        assert_consistent(cart)

    def test_rebase_reports_refused_and_dropped_ops(self, engine, seller_a, p1, p2):
        engine.add_item(p1, seller_a, 1)
        server_cart = remote_from_cart(engine.get_snapshot(), revision=1)
        server_cart.seller_groups = []

        ops = []
        engine.subscribe(ops.append)
        engine.add_item(p2, seller_a, 2)
        engine.update_quantity("P1", "S1", 3)

        replayed = engine.rebase(server_cart, ops[1:], rejected=ops[:1], detail="Listing withdrawn")

        assert replayed == []
        notices = engine.get_snapshot().notices
        assert [(n.operation, n.product_id) for n in notices] == [
            ("add_item", "P2"),
            ("update_quantity", "P1"),
        ]
        assert all(isinstance(n, ChangeRejectedNotice) for n in notices)
        assert notices[0].detail == "Listing withdrawn"

    def test_rebase_replays_pending_ops(self, engine, seller_a, seller_b, p1, p2, p3):
        engine.add_item(p1, seller_a, 1)
        server_cart = remote_from_cart(engine.get_snapshot(), revision=4)

        ops = []
        engine.subscribe(ops.append)
        engine.add_item(p2, seller_a, 2)
        engine.add_item(p3, seller_b, 1)
        engine.update_quantity("P1", "S1", 3)

        # server no longer has P1
        server_cart.seller_groups = []
        replayed = engine.rebase(server_cart, ops)

        assert [op.seq for op in replayed] == [2, 3]
        cart = engine.get_snapshot()
        assert cart.find_item("P1", "S1") is None
        assert cart.find_item("P2", "S1").quantity == 2
        assert cart.find_item("P3", "S2").quantity == 1
        assert cart.revision == 4
        assert_consistent(cart)


class TestApplyOperation:
    """Tests for the pure transformation"""

    def test_unchanged_state_is_same_object(self, engine, policy):
        state = engine.state
        op = MutationOp(seq=1, type=OperationType.REMOVE_ITEM, product_id="P1", seller_id="S1")

        new_state, notices = apply_operation(state, op, policy)

        assert new_state is state
        assert notices == []

    def test_add_without_listing_is_contract_error(self, engine, policy):
        op = MutationOp(seq=1, type=OperationType.ADD_ITEM, product_id="P1", seller_id="S1", quantity=1)

        with pytest.raises(CartContractError):
            apply_operation(engine.state, op, policy)
