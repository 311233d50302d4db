"""
Stock reconciliation rules.

Everything here is pure: inventory lists go in, new lists or records come out,
and the inputs are never touched. The store applies the results.
"""

from __future__ import annotations

import dataclasses
import uuid
from collections import Counter
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from core.errors import (
    InsufficientStockError,
    ProductNotFoundError,
    UnsupportedUnitError,
    ValidationError,
)
from db.models import InventoryItem, SaleItem

UNITS = ["bags", "kgs", "50kg"]
LEGACY_UNITS = ["kg"]
KG_UNITS = ["kgs", "kg"]  # preferred first when crediting a conversion

# kilograms per unit
CONVERSION_RATES: Dict[str, int] = {
    "bags": 70,
    "50kg": 50,
}

PRODUCT_SUGGESTIONS = [
    "Dairy Meal",
    "Layers Mash",
    "Broiler Starter",
    "Broiler Finisher",
    "Pig Grower",
    "Calf Starter",
    "Dairy Pellets",
]

DEFAULT_THRESHOLD = 10
DEFAULT_DESIRED_QUANTITY = 20
# kg records created by a conversion
KG_DEFAULT_THRESHOLD = 15
KG_DEFAULT_DESIRED_QUANTITY = 25


@dataclass(frozen=True)
class Conversion:
    withdrawn: int
    kg_equivalent: int
    source: InventoryItem  # after the withdrawal
    target: InventoryItem  # after the credit
    created: bool  # True if target did not exist before


def new_id() -> str:
    return uuid.uuid4().hex


def parse_quantity(raw, field: str = "Quantity", allow_zero: bool = True) -> int:
    """
    Turn raw form input into a non-negative int.
    Raises ValidationError naming the field for empty, non-numeric or negative input.
    """
    if isinstance(raw, bool):
        raise ValidationError(f"{field} must be a whole number.")
    if isinstance(raw, int):
        value = raw
    else:
        text = str(raw if raw is not None else "").strip()
        if not text:
            raise ValidationError(f"{field} is required.")
        try:
            value = int(text)
        except ValueError:
            raise ValidationError(f"{field} must be a whole number.") from None
    if value < 0:
        raise ValidationError(f"{field} cannot be negative.")
    if value == 0 and not allow_zero:
        raise ValidationError(f"{field} must be greater than zero.")
    return value


def is_low_stock(item: InventoryItem) -> bool:
    return item.quantity <= item.threshold


def low_stock_items(inventory: Iterable[InventoryItem]) -> List[InventoryItem]:
    return [item for item in inventory if is_low_stock(item)]


def replenishment_quantity(item: InventoryItem) -> int:
    """
    Amount needed to bring the item up to its target.
    Records without desired_quantity (old schema) aim for twice the threshold.
    """
    if item.desired_quantity is None:
        target = item.threshold * 2
    else:
        target = item.desired_quantity
    return max(0, target - item.quantity)


def find_item(
    inventory: Iterable[InventoryItem], product: str, unit: Optional[str] = None
) -> Optional[InventoryItem]:
    """
    Exact product match. Without a unit the first record for the product is
    returned. With one, the record must be in that unit; kgs and legacy kg
    count as the same unit, an exact match winning.
    """
    same_kind = None
    for item in inventory:
        if item.product != product:
            continue
        if unit is None or item.unit == unit:
            return item
        if same_kind is None and item.unit in KG_UNITS and unit in KG_UNITS:
            same_kind = item
    return same_kind


def add_stock(
    inventory: Sequence[InventoryItem],
    shop_id: str,
    product: str,
    quantity: int,
    unit: str,
) -> InventoryItem:
    """
    Return the record after receiving stock: the existing (product, unit)
    record incremented, or a new record with default levels.
    """
    product = (product or "").strip()
    if not product:
        raise ValidationError("Product is required.")
    if unit not in UNITS + LEGACY_UNITS:
        raise ValidationError(f"Unknown unit '{unit}'.")
    quantity = parse_quantity(quantity, allow_zero=False)

    for item in inventory:
        if item.shop_id == shop_id and item.product == product and item.unit == unit:
            return dataclasses.replace(item, quantity=item.quantity + quantity)
    return InventoryItem(
        id=new_id(),
        shop_id=shop_id,
        product=product,
        quantity=quantity,
        unit=unit,
        threshold=DEFAULT_THRESHOLD,
        desired_quantity=DEFAULT_DESIRED_QUANTITY,
    )


def convert_units(
    inventory: Sequence[InventoryItem], product: str, from_unit: str, amount: int
) -> Conversion:
    if from_unit not in CONVERSION_RATES:
        raise UnsupportedUnitError(from_unit)
    amount = parse_quantity(amount, "Quantity to convert", allow_zero=False)

    source = next(
        (i for i in inventory if i.product == product and i.unit == from_unit), None
    )
    if source is None:
        raise ProductNotFoundError(product, from_unit)
    if amount > source.quantity:
        raise InsufficientStockError(product, amount, source.quantity)

    kg_equivalent = amount * CONVERSION_RATES[from_unit]
    source_after = dataclasses.replace(source, quantity=source.quantity - amount)

    target = None
    for kg_unit in KG_UNITS:
        target = next(
            (
                i
                for i in inventory
                if i.shop_id == source.shop_id
                and i.product == product
                and i.unit == kg_unit
            ),
            None,
        )
        if target is not None:
            break

    if target is None:
        target_after = InventoryItem(
            id=new_id(),
            shop_id=source.shop_id,
            product=product,
            quantity=kg_equivalent,
            unit="kgs",
            threshold=KG_DEFAULT_THRESHOLD,
            desired_quantity=KG_DEFAULT_DESIRED_QUANTITY,
        )
    else:
        target_after = dataclasses.replace(
            target, quantity=target.quantity + kg_equivalent
        )

    return Conversion(
        withdrawn=amount,
        kg_equivalent=kg_equivalent,
        source=source_after,
        target=target_after,
        created=target is None,
    )


def sale_lines(sale_items: Iterable[SaleItem]) -> Tuple[SaleItem, ...]:
    """Sale lines with their quantities parsed to positive ints."""
    return tuple(
        dataclasses.replace(
            line,
            quantity=parse_quantity(line.quantity, f"Quantity of {line.product}", False),
        )
        for line in sale_items
    )


def apply_sale(
    inventory: Sequence[InventoryItem], sale_items: Sequence[SaleItem]
) -> List[InventoryItem]:
    """
    Decrement stock for every line of one sale, or fail without touching anything.

    All lines are validated first; quantities of repeated lines for the same
    record are summed before comparing against stock.
    Returns the full inventory list with the matched records replaced.
    """
    if not sale_items:
        raise ValidationError("A sale needs at least one item.")

    requested: Counter = Counter()
    matched: Dict[str, InventoryItem] = {}
    for line in sale_lines(sale_items):
        item = find_item(inventory, line.product, line.unit)
        if item is None:
            raise ProductNotFoundError(line.product, line.unit)
        requested[item.id] += line.quantity
        matched[item.id] = item
        if item.quantity < requested[item.id]:
            raise InsufficientStockError(
                item.product, requested[item.id], item.quantity
            )

    return [
        dataclasses.replace(item, quantity=item.quantity - requested[item.id])
        if item.id in matched
        else item
        for item in inventory
    ]
