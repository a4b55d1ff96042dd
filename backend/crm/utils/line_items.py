"""
Invoice line-item editing rules.

Every function returns a new list and leaves its input untouched. amount is
derived from quantity x rate and is recomputed whenever either changes.
"""
import logging
import re
import uuid
from decimal import Decimal
from typing import Any, Iterable, List

from crm.schemas.invoice import InvoiceItem, InvoiceItemInput
from crm.utils.money import ZERO, parse_currency_input, quantize_money

logger = logging.getLogger(__name__)

# Fields that are derived or identify the row; they can't be overwritten directly
PROTECTED_FIELDS = {"id", "amount"}

_LEADING_INT = re.compile(r"^\s*[+-]?\d+")


def parse_quantity(value: Any) -> int:
    """Coerce to a non-negative integer, 0 when unparseable ("3.7" -> 3, "abc" -> 0)"""
    if isinstance(value, bool) or value is None:
        return 0
    if isinstance(value, int):
        quantity = value
    elif isinstance(value, (float, Decimal)):
        try:
            quantity = int(value)
        except (ValueError, OverflowError):
            return 0
    else:
        match = _LEADING_INT.match(str(value))
        if not match:
            return 0
        try:
            quantity = int(match.group(0))
        except ValueError:
            # Past the interpreter's int string-length limit
            return 0
    return max(quantity, 0)


def parse_rate(value: Any) -> Decimal:
    if isinstance(value, str) or value is None:
        return parse_currency_input(value)
    rate = quantize_money(value)
    return rate if rate > 0 else ZERO


def compute_amount(quantity: int, rate: Decimal) -> Decimal:
    try:
        return quantize_money(Decimal(quantity) * rate)
    except ArithmeticError:
        return ZERO


def new_item_id() -> str:
    return str(uuid.uuid4())


def add_item(items: List[InvoiceItem]) -> List[InvoiceItem]:
    """Append a blank item: quantity 1, rate 0, amount 0"""
    return [*items, InvoiceItem(id=new_item_id(), description="", quantity=1, rate=ZERO, amount=ZERO)]


def update_item(items: List[InvoiceItem], item_id: str, field: str, value: Any) -> List[InvoiceItem]:
    """
    Update one field of the item with the given id. Unknown ids are a no-op.

    rate goes through the lenient currency parser, quantity through the integer
    coercion; both recompute amount. Other fields are replaced verbatim.
    """
    updated = []
    for item in items:
        if item.id != item_id:
            updated.append(item)
            continue

        if field == "rate":
            rate = parse_rate(value)
            item = item.model_copy(update={"rate": rate, "amount": compute_amount(item.quantity, rate)})
        elif field == "quantity":
            quantity = parse_quantity(value)
            item = item.model_copy(update={"quantity": quantity, "amount": compute_amount(quantity, item.rate)})
        elif field in PROTECTED_FIELDS or field not in InvoiceItem.model_fields:
            logger.debug(f"Ignoring update to field '{field}' on item {item_id}")
        else:
            item = item.model_copy(update={field: value})
        updated.append(item)
    return updated


def remove_item(items: List[InvoiceItem], item_id: str) -> List[InvoiceItem]:
    """Drop the matching item. Reducing the list to zero items is allowed while editing."""
    return [item for item in items if item.id != item_id]


def build_items(inputs: Iterable[InvoiceItemInput]) -> List[InvoiceItem]:
    """
    Normalise client-submitted items into InvoiceItems.

    Client amounts are never trusted: each item is rebuilt through the same
    quantity/rate rules used for single-field edits. Items keep their id when
    one was given and get a fresh one otherwise; duplicate ids are reassigned.
    """
    seen = set()
    items: List[InvoiceItem] = []
    for raw in inputs:
        item_id = raw.id if raw.id and raw.id not in seen else new_item_id()
        if raw.id and raw.id != item_id:
            logger.info(f"Duplicate item id {raw.id} reassigned to {item_id}")
        seen.add(item_id)

        quantity = parse_quantity(raw.quantity)
        rate = parse_rate(raw.rate)
        items.append(InvoiceItem(
            id=item_id,
            description=raw.description or "",
            quantity=quantity,
            rate=rate,
            amount=compute_amount(quantity, rate),
        ))
    return items
