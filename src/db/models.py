# provide dataclass models

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Tuple


@dataclass(frozen=True)
class UserProfile:
    id: str
    username: str
    display_name: str
    role: str  # "seller" or "admin"
    shop_id: Optional[str] = None  # sellers only, admins see every shop
    shop_name: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


@dataclass(frozen=True)
class Shop:
    shop_id: str
    shop_name: str


@dataclass(frozen=True)
class InventoryItem:
    id: str
    shop_id: str
    product: str
    quantity: int
    unit: str  # bags, kgs, 50kg or legacy kg
    threshold: int
    desired_quantity: Optional[int] = None  # None on records from the old schema
    created_at: Optional[str] = None


@dataclass(frozen=True)
class SaleItem:
    product: str
    quantity: int
    unit: str


@dataclass(frozen=True)
class SalesTransaction:
    id: str
    shop_id: str
    customer_name: str
    date: str  # YYYY-MM-DD
    items: Tuple[SaleItem, ...] = field(default_factory=tuple)
    created_at: Optional[str] = None


@dataclass(frozen=True)
class LegacySale:
    """
    Single-item sale as stored by the old `sales` table.
    Normalized into a SalesTransaction before anything else sees it.
    """

    id: str
    shop_id: str
    customer_name: str
    date: str
    product: str
    quantity: int
    unit: str
    created_at: Optional[str] = None
