"""
Read-only views over sales transactions: normalizing, filtering, sorting, grouping.
None of these functions mutate their input.
"""

from __future__ import annotations

import locale
import unicodedata
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Tuple

from core.errors import ValidationError
from db.models import LegacySale, SaleItem, SalesTransaction

SORT_KEYS = ("date", "product", "customer")
ALL = "all"


@dataclass(frozen=True)
class SalesFilter:
    search_term: str = ""
    product: Optional[str] = None  # None, "" or "all" means any
    customer: Optional[str] = None
    date_from: Optional[str] = None  # inclusive, YYYY-MM-DD
    date_to: Optional[str] = None


@dataclass(frozen=True)
class DateGroup:
    date: str
    transactions: Tuple[SalesTransaction, ...]
    total_quantity: int
    customers: Tuple[str, ...] = field(default_factory=tuple)


def _unset(value: Optional[str]) -> bool:
    return value is None or value == "" or value == ALL


def _text_key(value: str) -> str:
    # fold accents first so accented names sort with their base letters in any locale
    decomposed = unicodedata.normalize("NFKD", (value or "").casefold())
    folded = "".join(c for c in decomposed if not unicodedata.combining(c))
    return locale.strxfrm(folded)


def normalize_sale(
    record: SalesTransaction | LegacySale | Mapping[str, Any],
) -> SalesTransaction:
    """
    Accept either sale shape and return the multi-item form.

    Mappings may carry an `items` list (modern) or `product`/`quantity`/`unit`
    directly (legacy). Keys may be snake_case or camelCase.
    """
    if isinstance(record, SalesTransaction):
        return record
    if isinstance(record, LegacySale):
        return SalesTransaction(
            id=record.id,
            shop_id=record.shop_id,
            customer_name=record.customer_name,
            date=record.date,
            items=(SaleItem(record.product, int(record.quantity), record.unit),),
            created_at=record.created_at,
        )

    def get(*keys, default=None):
        for k in keys:
            if k in record and record[k] is not None:
                return record[k]
        return default

    raw_items = record.get("items")
    if raw_items is not None:
        items = tuple(
            i
            if isinstance(i, SaleItem)
            else SaleItem(
                product=i.get("product") or "",
                quantity=int(i.get("quantity") or 0),
                unit=i.get("unit") or "",
            )
            for i in raw_items
        )
    else:
        items = (
            SaleItem(
                product=get("product", default=""),
                quantity=int(get("quantity", default=0)),
                unit=get("unit", default=""),
            ),
        )
    return SalesTransaction(
        id=str(get("id", default="")),
        shop_id=get("shop_id", "shopId", default=""),
        customer_name=get("customer_name", "customerName", default=""),
        date=get("date", default=""),
        items=items,
        created_at=get("created_at", "createdAt"),
    )


def matches(txn: SalesTransaction, criteria: SalesFilter) -> bool:
    term = (criteria.search_term or "").strip().casefold()
    if term:
        in_customer = term in txn.customer_name.casefold()
        in_items = any(term in i.product.casefold() for i in txn.items)
        if not (in_customer or in_items):
            return False
    if not _unset(criteria.product):
        if not any(i.product == criteria.product for i in txn.items):
            return False
    if not _unset(criteria.customer) and txn.customer_name != criteria.customer:
        return False
    # ISO dates compare correctly as strings
    if criteria.date_from and txn.date < criteria.date_from:
        return False
    if criteria.date_to and txn.date > criteria.date_to:
        return False
    return True


def filter_transactions(
    transactions: Iterable[SalesTransaction], criteria: Optional[SalesFilter] = None
) -> List[SalesTransaction]:
    criteria = criteria or SalesFilter()
    return [t for t in transactions if matches(t, criteria)]


def sort_transactions(
    transactions: Iterable[SalesTransaction], key: str = "date"
) -> List[SalesTransaction]:
    """
    date: newest first. product (first line item) and customer: ascending.
    Equal keys keep their original order.
    """
    if key == "date":
        return sorted(transactions, key=lambda t: t.date, reverse=True)
    if key == "product":
        return sorted(
            transactions, key=lambda t: _text_key(t.items[0].product if t.items else "")
        )
    if key == "customer":
        return sorted(transactions, key=lambda t: _text_key(t.customer_name))
    raise ValidationError(f"Cannot sort by '{key}'.")


def total_quantity(
    transactions: Iterable[SalesTransaction], product: Optional[str] = None
) -> int:
    return sum(
        item.quantity
        for t in transactions
        for item in t.items
        if _unset(product) or item.product == product
    )


def distinct_customers(transactions: Iterable[SalesTransaction]) -> List[str]:
    return list(dict.fromkeys(t.customer_name for t in transactions))


def distinct_products(transactions: Iterable[SalesTransaction]) -> List[str]:
    return list(dict.fromkeys(i.product for t in transactions for i in t.items))


def group_by_date(
    transactions: Sequence[SalesTransaction], product: Optional[str] = None
) -> List[DateGroup]:
    """
    One group per exact date string, newest first. Transactions keep their
    input order inside a group. total_quantity can be restricted to one product.
    """
    buckets: dict[str, List[SalesTransaction]] = {}
    for t in transactions:
        buckets.setdefault(t.date, []).append(t)

    return [
        DateGroup(
            date=day,
            transactions=tuple(txns),
            total_quantity=total_quantity(txns, product),
            customers=tuple(distinct_customers(txns)),
        )
        for day, txns in sorted(buckets.items(), key=lambda kv: kv[0], reverse=True)
    ]
