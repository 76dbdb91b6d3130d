"""
Stock opname: snapshot, count, finalize exactly once.
"""

from uuid import uuid4

import pytest

from stock_kernel.domain.values import (
    MovementFilter,
    MovementType,
    OpnameCountUpdate,
    OpnameStatus,
    OpnameSummary,
    ReferenceType,
)
from stock_kernel.exceptions import (
    AlreadyFinalizedError,
    IncompleteCountError,
    InvalidQuantityError,
    OpnameItemNotFoundError,
    OpnameNotFoundError,
    ValidationError,
    WarehouseInactiveError,
)


@pytest.fixture
def sku_1():
    return uuid4()


@pytest.fixture
def seeded_opname(inventory, stock_in, main_warehouse, sku_1, test_actor_id):
    stock_in(sku_1, main_warehouse, 30)
    return inventory.create_opname(main_warehouse.id, actor_id=test_actor_id)


class TestCreate:

    def test_snapshot_captures_system_quantities(self, seeded_opname, sku_1, main_warehouse):
        assert seeded_opname.status is OpnameStatus.DRAFT
        assert seeded_opname.number == "OP-20240101-0001"
        assert seeded_opname.warehouse_id == main_warehouse.id
        assert seeded_opname.total_items == 1
        assert seeded_opname.counted_items == 0
        (item,) = seeded_opname.items
        assert (item.product_id, item.system_qty, item.physical_qty, item.difference) == (sku_1, 30, None, None)

    def test_zero_quantity_records_are_included(self, inventory, stock_in, main_warehouse, test_actor_id):
        product_id = uuid4()
        stock_in(product_id, main_warehouse, 2)
        inventory.adjust_stock(product_id, main_warehouse.id, "set", 0, "Recount", actor_id=test_actor_id)

        opname = inventory.create_opname(main_warehouse.id, actor_id=test_actor_id)
        assert [(i.product_id, i.system_qty) for i in opname.items] == [(product_id, 0)]

    def test_extra_products_snapshot_at_zero(self, inventory, main_warehouse, test_actor_id):
        new_product = uuid4()
        opname = inventory.create_opname(
            main_warehouse.id, notes="Quarterly", product_ids=[new_product], actor_id=test_actor_id,
        )
        assert opname.notes == "Quarterly"
        assert [(i.product_id, i.system_qty) for i in opname.items] == [(new_product, 0)]

    def test_numbers_increase_within_a_day(self, inventory, main_warehouse, test_actor_id):
        first = inventory.create_opname(main_warehouse.id, actor_id=test_actor_id)
        second = inventory.create_opname(main_warehouse.id, actor_id=test_actor_id)
        assert (first.number, second.number) == ("OP-20240101-0001", "OP-20240101-0002")

    def test_snapshot_is_not_rewritten_by_later_movements(
        self, inventory, seeded_opname, sku_1, main_warehouse, test_actor_id,
    ):
        inventory.adjust_stock(sku_1, main_warehouse.id, "add", 5, "Late delivery", actor_id=test_actor_id)
        assert inventory.get_opname(seeded_opname.id).items[0].system_qty == 30

    def test_inactive_warehouse_rejected(self, inventory, create_warehouse, test_actor_id):
        closed = create_warehouse("WH-X", "Closed", is_active=False)
        with pytest.raises(WarehouseInactiveError):
            inventory.create_opname(closed.id, actor_id=test_actor_id)


class TestCounting:

    def test_record_count_computes_difference(self, inventory, seeded_opname, sku_1, test_actor_id):
        item = inventory.record_opname_count(seeded_opname.id, sku_1, 28, "two missing", actor_id=test_actor_id)
        assert item.physical_qty == 28
        assert item.difference == -2
        assert item.notes == "two missing"
        assert inventory.get_opname(seeded_opname.id).status is OpnameStatus.COUNTING

    def test_recount_overwrites(self, inventory, seeded_opname, sku_1, test_actor_id):
        inventory.record_opname_count(seeded_opname.id, sku_1, 28, actor_id=test_actor_id)
        item = inventory.record_opname_count(seeded_opname.id, sku_1, 31, actor_id=test_actor_id)
        assert item.difference == 1

    def test_unknown_product(self, inventory, seeded_opname, test_actor_id):
        with pytest.raises(OpnameItemNotFoundError):
            inventory.record_opname_count(seeded_opname.id, uuid4(), 1, actor_id=test_actor_id)

    def test_negative_count_rejected(self, inventory, seeded_opname, sku_1, test_actor_id):
        with pytest.raises(InvalidQuantityError):
            inventory.record_opname_count(seeded_opname.id, sku_1, -1, actor_id=test_actor_id)

    def test_update_items_by_item_id(self, inventory, seeded_opname, test_actor_id):
        item_id = seeded_opname.items[0].id
        updated = inventory.update_opname_items(
            seeded_opname.id,
            [OpnameCountUpdate(item_id=item_id, physical_qty=30)],
            actor_id=test_actor_id,
        )
        assert updated.status is OpnameStatus.COUNTING
        assert updated.counted_items == 1
        assert updated.items_with_difference == 0

    def test_update_items_accepts_mappings(self, inventory, seeded_opname, test_actor_id):
        item_id = seeded_opname.items[0].id
        updated = inventory.update_opname_items(
            seeded_opname.id,
            [{"item_id": str(item_id), "physical_qty": 25, "notes": "shelf"}],
            actor_id=test_actor_id,
        )
        assert updated.items[0].difference == -5
        assert updated.items_with_difference == 1

    def test_update_items_is_all_or_nothing(self, inventory, stock_in, main_warehouse, test_actor_id):
        a, b = uuid4(), uuid4()
        stock_in(a, main_warehouse, 1)
        stock_in(b, main_warehouse, 1)
        opname = inventory.create_opname(main_warehouse.id, actor_id=test_actor_id)

        with pytest.raises(OpnameItemNotFoundError):
            inventory.update_opname_items(
                opname.id,
                [
                    OpnameCountUpdate(item_id=opname.items[0].id, physical_qty=5),
                    OpnameCountUpdate(item_id=uuid4(), physical_qty=5),
                ],
                actor_id=test_actor_id,
            )

        reloaded = inventory.get_opname(opname.id)
        assert reloaded.counted_items == 0
        assert reloaded.status is OpnameStatus.DRAFT

    def test_update_items_missing_key(self, inventory, seeded_opname, test_actor_id):
        with pytest.raises(ValidationError):
            inventory.update_opname_items(seeded_opname.id, [{"physical_qty": 3}], actor_id=test_actor_id)

    def test_unknown_session(self, inventory, test_actor_id):
        with pytest.raises(OpnameNotFoundError):
            inventory.record_opname_count(uuid4(), uuid4(), 1, actor_id=test_actor_id)


class TestFinalize:

    def test_opname_example_scenario(
        self, inventory, seeded_opname, sku_1, main_warehouse, quantity_of, test_actor_id,
    ):
        inventory.record_opname_count(seeded_opname.id, sku_1, 28, actor_id=test_actor_id)

        summary = inventory.finalize_opname(seeded_opname.id, actor_id=test_actor_id)

        assert summary == OpnameSummary(adjusted_items=1, total_added=0, total_subtracted=2)
        assert quantity_of(sku_1, main_warehouse) == 28

        movements = inventory.get_movements(MovementFilter(reference_number=seeded_opname.number))
        assert len(movements) == 1
        m = movements[0]
        assert m.movement_type is MovementType.ADJUSTMENT
        assert m.reference_type is ReferenceType.ADJUSTMENT
        assert m.quantity_change == -2
        assert m.reference_id == seeded_opname.id
        assert m.notes == f"Stock Opname: {seeded_opname.number} (-2)"

        finalized = inventory.get_opname(seeded_opname.id)
        assert finalized.status is OpnameStatus.FINALIZED
        assert finalized.finalized_at is not None

    def test_uncounted_items_block_finalize(self, inventory, seeded_opname, quantity_of, sku_1, main_warehouse, test_actor_id):
        with pytest.raises(IncompleteCountError) as exc_info:
            inventory.finalize_opname(seeded_opname.id, actor_id=test_actor_id)
        assert (exc_info.value.uncounted, exc_info.value.total) == (1, 1)
        assert quantity_of(sku_1, main_warehouse) == 30

    def test_second_finalize_errors_and_writes_nothing(
        self, inventory, seeded_opname, sku_1, test_actor_id,
    ):
        inventory.record_opname_count(seeded_opname.id, sku_1, 28, actor_id=test_actor_id)
        inventory.finalize_opname(seeded_opname.id, actor_id=test_actor_id)
        before = len(inventory.get_movements())

        with pytest.raises(AlreadyFinalizedError):
            inventory.finalize_opname(seeded_opname.id, actor_id=test_actor_id)

        assert len(inventory.get_movements()) == before

    def test_counting_after_finalize_rejected(self, inventory, seeded_opname, sku_1, test_actor_id):
        inventory.record_opname_count(seeded_opname.id, sku_1, 30, actor_id=test_actor_id)
        inventory.finalize_opname(seeded_opname.id, actor_id=test_actor_id)
        with pytest.raises(AlreadyFinalizedError):
            inventory.record_opname_count(seeded_opname.id, sku_1, 29, actor_id=test_actor_id)

    def test_zero_difference_items_write_no_movement(self, inventory, seeded_opname, sku_1, test_actor_id):
        inventory.record_opname_count(seeded_opname.id, sku_1, 30, actor_id=test_actor_id)
        summary = inventory.finalize_opname(seeded_opname.id, actor_id=test_actor_id)
        assert summary == OpnameSummary(0, 0, 0)
        assert inventory.get_movements(MovementFilter(reference_number=seeded_opname.number)) == []

    def test_matching_count_keeps_later_ledger_changes(
        self, inventory, seeded_opname, sku_1, main_warehouse, quantity_of, test_actor_id,
    ):
        inventory.record_opname_count(seeded_opname.id, sku_1, 30, actor_id=test_actor_id)
        inventory.issue_stock(sku_1, main_warehouse.id, 5, "sale", actor_id=test_actor_id)

        summary = inventory.finalize_opname(seeded_opname.id, actor_id=test_actor_id)

        assert summary == OpnameSummary(0, 0, 0)
        assert quantity_of(sku_1, main_warehouse) == 25

    def test_nonzero_difference_absorbs_later_ledger_changes(
        self, inventory, seeded_opname, sku_1, main_warehouse, quantity_of, test_actor_id,
    ):
        inventory.record_opname_count(seeded_opname.id, sku_1, 28, actor_id=test_actor_id)
        inventory.issue_stock(sku_1, main_warehouse.id, 5, "sale", actor_id=test_actor_id)

        summary = inventory.finalize_opname(seeded_opname.id, actor_id=test_actor_id)

        assert quantity_of(sku_1, main_warehouse) == 28
        assert summary == OpnameSummary(adjusted_items=1, total_added=3, total_subtracted=0)

    def test_mixed_differences(self, inventory, stock_in, quantity_of, main_warehouse, test_actor_id):
        over, under, exact = uuid4(), uuid4(), uuid4()
        for product_id, quantity in ((over, 10), (under, 10), (exact, 10)):
            stock_in(product_id, main_warehouse, quantity)
        opname = inventory.create_opname(main_warehouse.id, actor_id=test_actor_id)
        counts = {over: 13, under: 6, exact: 10}
        inventory.update_opname_items(
            opname.id,
            [OpnameCountUpdate(item_id=i.id, physical_qty=counts[i.product_id]) for i in opname.items],
            actor_id=test_actor_id,
        )

        summary = inventory.finalize_opname(opname.id, actor_id=test_actor_id)

        assert summary == OpnameSummary(adjusted_items=2, total_added=3, total_subtracted=4)
        for product_id, expected in counts.items():
            assert quantity_of(product_id, main_warehouse) == expected

    def test_empty_session_finalizes_from_draft(self, inventory, main_warehouse, test_actor_id):
        opname = inventory.create_opname(main_warehouse.id, actor_id=test_actor_id)
        assert opname.total_items == 0
        assert inventory.finalize_opname(opname.id, actor_id=test_actor_id) == OpnameSummary(0, 0, 0)

    def test_finalize_is_logged(self, inventory, seeded_opname, sku_1, test_actor_id, captured_logs):
        inventory.record_opname_count(seeded_opname.id, sku_1, 28, actor_id=test_actor_id)
        inventory.finalize_opname(seeded_opname.id, actor_id=test_actor_id)

        (record,) = [r for r in captured_logs() if r["message"] == "opname_finalized"]
        assert record["total_subtracted"] == 2
        assert record["opname_id"] == str(seeded_opname.id)


class TestDelete:

    def test_deleted_session_disappears(self, inventory, seeded_opname, test_actor_id):
        inventory.delete_opname(seeded_opname.id, actor_id=test_actor_id)
        with pytest.raises(OpnameNotFoundError):
            inventory.get_opname(seeded_opname.id)
        assert inventory.list_opnames().total == 0

    def test_finalized_session_cannot_be_deleted(self, inventory, seeded_opname, sku_1, test_actor_id):
        inventory.record_opname_count(seeded_opname.id, sku_1, 30, actor_id=test_actor_id)
        inventory.finalize_opname(seeded_opname.id, actor_id=test_actor_id)
        with pytest.raises(AlreadyFinalizedError):
            inventory.delete_opname(seeded_opname.id, actor_id=test_actor_id)
