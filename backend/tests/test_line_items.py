from decimal import Decimal

import pytest

from crm.schemas.invoice import InvoiceItem, InvoiceItemInput
from crm.utils.line_items import (
    add_item,
    build_items,
    compute_amount,
    parse_quantity,
    remove_item,
    update_item,
)


def make_item(item_id="a", quantity=1, rate="0.00", description="Work"):
    rate = Decimal(rate)
    return InvoiceItem(id=item_id, description=description, quantity=quantity, rate=rate, amount=rate * quantity)


class TestAddItem:

    def test_appends_blank_item(self):
        items = add_item([make_item("a")])
        assert len(items) == 2
        new = items[-1]
        assert new.quantity == 1
        assert new.rate == Decimal("0")
        assert new.amount == Decimal("0")

    def test_ids_are_unique(self):
        items = add_item(add_item([]))
        assert items[0].id != items[1].id

    def test_input_list_is_not_modified(self):
        original = [make_item("a")]
        add_item(original)
        assert len(original) == 1


class TestUpdateItem:

    def test_quantity_recomputes_amount(self):
        items = update_item([make_item("a", quantity=1, rate="10.00")], "a", "quantity", 3)
        assert items[0].quantity == 3
        assert items[0].amount == Decimal("30.00")

    def test_rate_text_is_parsed_and_recomputes_amount(self):
        items = update_item([make_item("a", quantity=4, rate="1.00")], "a", "rate", "7.5")
        assert items[0].rate == Decimal("7.50")
        assert items[0].amount == Decimal("30.00")

    def test_unparseable_quantity_becomes_zero(self):
        items = update_item([make_item("a", quantity=2, rate="5.00")], "a", "quantity", "lots")
        assert items[0].quantity == 0
        assert items[0].amount == Decimal("0.00")

    def test_unparseable_rate_becomes_zero(self):
        items = update_item([make_item("a", quantity=2, rate="5.00")], "a", "rate", "abc")
        assert items[0].rate == Decimal("0.00")
        assert items[0].amount == Decimal("0.00")

    def test_rate_longer_than_decimal_precision_becomes_zero(self):
        items = update_item([make_item("a", quantity=2, rate="1.00")], "a", "rate", "9" * 30)
        assert items[0].rate == Decimal("0.00")
        assert items[0].amount == Decimal("0.00")

    def test_quantity_too_large_for_amount_zeroes_amount(self):
        items = update_item([make_item("a", rate="5.00")], "a", "quantity", "9" * 30)
        assert items[0].quantity == int("9" * 30)
        assert items[0].amount == Decimal("0.00")

    def test_description_is_replaced_verbatim(self):
        before = make_item("a", quantity=2, rate="5.00")
        items = update_item([before], "a", "description", "  New text ")
        assert items[0].description == "  New text "
        assert items[0].amount == before.amount

    def test_unknown_id_is_noop(self):
        before = [make_item("a", quantity=2, rate="5.00")]
        assert update_item(before, "missing", "quantity", 9) == before

    def test_amount_cannot_be_set_directly(self):
        items = update_item([make_item("a", quantity=2, rate="5.00")], "a", "amount", "999")
        assert items[0].amount == Decimal("10.00")

    def test_other_items_untouched(self):
        items = update_item([make_item("a", rate="1.00"), make_item("b", rate="2.00")], "a", "quantity", 5)
        assert items[1] == make_item("b", rate="2.00")


class TestRemoveItem:

    def test_removes_matching_item(self):
        items = remove_item([make_item("a"), make_item("b")], "a")
        assert [item.id for item in items] == ["b"]

    def test_can_remove_last_item(self):
        assert remove_item([make_item("a")], "a") == []


class TestParseQuantity:

    @pytest.mark.parametrize("value, expected", [
        (3, 3),
        ("3", 3),
        ("3.7", 3),
        (2.9, 2),
        ("abc", 0),
        ("", 0),
        (None, 0),
        (-4, 0),
        (True, 0),
    ])
    def test_coercion(self, value, expected):
        assert parse_quantity(value) == expected

    def test_very_long_digit_string_does_not_raise(self):
        assert parse_quantity("9" * 5000) >= 0


class TestComputeAmount:

    def test_quantity_times_rate(self):
        assert compute_amount(3, Decimal("2.50")) == Decimal("7.50")

    def test_product_beyond_decimal_precision_is_zero(self):
        assert compute_amount(10 ** 40, Decimal("5.00")) == Decimal("0.00")


class TestBuildItems:

    def test_client_amounts_are_recomputed(self):
        items = build_items([InvoiceItemInput(description="A", quantity="2", rate="$5.00")])
        assert items[0].amount == Decimal("10.00")

    def test_missing_and_duplicate_ids_are_assigned(self):
        items = build_items([
            InvoiceItemInput(id="x", quantity=1, rate="1"),
            InvoiceItemInput(id="x", quantity=1, rate="1"),
            InvoiceItemInput(quantity=1, rate="1"),
        ])
        ids = [item.id for item in items]
        assert ids[0] == "x"
        assert len(set(ids)) == 3

    def test_oversized_values_do_not_raise(self):
        items = build_items([InvoiceItemInput(description="A", quantity="9" * 30, rate="9" * 30)])
        assert items[0].rate == Decimal("0.00")
        assert items[0].amount == Decimal("0.00")
