# src/db/crud.py
from __future__ import annotations

from datetime import date as date_type
from typing import Dict, Iterable, List, Optional, Sequence

import aiosqlite
from werkzeug.security import check_password_hash, generate_password_hash

from core import stock
from core.errors import InvalidCredentialsError, PersistenceError, ValidationError
from core.sales import normalize_sale
from db import models
from db.database import connect, transaction
from utils.logger import get_logger

_logger = get_logger(__name__)

ROLES = ("seller", "admin")
MIN_PASSWORD_LENGTH = 6
INVENTORY_FIELDS = ("product", "quantity", "unit", "threshold", "desired_quantity")

_PROFILE_COLS = "id, username, display_name, role, shop_id, shop_name"
_INVENTORY_COLS = (
    "id, shop_id, product, quantity, unit, threshold, desired_quantity, created_at"
)


def _to_profile(row) -> models.UserProfile:
    return models.UserProfile(
        id=row["id"],
        username=row["username"],
        display_name=row["display_name"],
        role=row["role"],
        shop_id=row["shop_id"],
        shop_name=row["shop_name"],
    )


def _to_item(row) -> models.InventoryItem:
    return models.InventoryItem(
        id=row["id"],
        shop_id=row["shop_id"],
        product=row["product"],
        quantity=int(row["quantity"]),
        unit=row["unit"],
        threshold=int(row["threshold"]),
        desired_quantity=(
            int(row["desired_quantity"]) if row["desired_quantity"] is not None else None
        ),
        created_at=row["created_at"],
    )


def _check_password(password: str) -> str:
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters long."
        )
    return password


def _check_date(value: str) -> str:
    """Dates are stored as YYYY-MM-DD so they sort and compare as text."""
    try:
        return date_type.fromisoformat((value or "").strip()).isoformat()
    except ValueError:
        raise ValidationError(f"'{value}' is not a YYYY-MM-DD date.") from None


# ---------------------------
# Auth & Profiles
# ---------------------------


async def authenticate(username: str, password: str) -> models.UserProfile:
    """Return the profile whose username and password match.

    Raises InvalidCredentialsError without saying which of the two was wrong.
    """
    username = (username or "").strip()
    if not username or not password:
        raise InvalidCredentialsError()
    async with connect() as conn:
        cur = await conn.execute(
            f"SELECT {_PROFILE_COLS}, password_hash FROM profiles WHERE username = ?;",
            (username,),
        )
        row = await cur.fetchone()
        await cur.close()
    if not row or not check_password_hash(row["password_hash"], password):
        _logger.info(f"Failed login for '{username}'.")
        raise InvalidCredentialsError()
    _logger.info(f"User '{username}' logged in.")
    return _to_profile(row)


async def get_profile(profile_id: str) -> Optional[models.UserProfile]:
    async with connect() as conn:
        cur = await conn.execute(
            f"SELECT {_PROFILE_COLS} FROM profiles WHERE id = ?;", (profile_id,)
        )
        row = await cur.fetchone()
        await cur.close()
    return _to_profile(row) if row else None


async def list_profiles() -> List[models.UserProfile]:
    """Admins first, then sellers by shop name."""
    async with connect() as conn:
        cur = await conn.execute(
            f"""
            SELECT {_PROFILE_COLS}
            FROM profiles
            ORDER BY role = 'seller', COALESCE(shop_name, ''), username;
            """
        )
        rows = await cur.fetchall()
        await cur.close()
    return [_to_profile(r) for r in rows]


async def list_shops() -> List[models.Shop]:
    """Shops known through their seller profiles."""
    async with connect() as conn:
        cur = await conn.execute(
            """
            SELECT shop_id, MAX(COALESCE(shop_name, shop_id)) AS shop_name
            FROM profiles
            WHERE role = 'seller' AND shop_id IS NOT NULL
            GROUP BY shop_id
            ORDER BY shop_name;
            """
        )
        rows = await cur.fetchall()
        await cur.close()
    return [models.Shop(shop_id=r["shop_id"], shop_name=r["shop_name"]) for r in rows]


def _profile_fields(
    role: str, display_name: str, shop_id: Optional[str], shop_name: Optional[str]
) -> tuple:
    if role not in ROLES:
        raise ValidationError(f"Role must be one of {', '.join(ROLES)}.")
    display_name = (display_name or "").strip()
    if role == "admin":
        return role, display_name, None, None
    shop_id = (shop_id or "").strip()
    if not shop_id:
        raise ValidationError("Sellers need a shop id.")
    shop_name = (shop_name or "").strip() or shop_id
    return role, display_name, shop_id, shop_name


async def _username_taken(
    conn: aiosqlite.Connection, username: str, except_id: Optional[str] = None
) -> bool:
    cur = await conn.execute(
        "SELECT 1 FROM profiles WHERE username = ? AND id IS NOT ? LIMIT 1;",
        (username, except_id),
    )
    row = await cur.fetchone()
    await cur.close()
    return row is not None


async def create_profile(
    username: str,
    password: str,
    role: str = "seller",
    display_name: str = "",
    shop_id: Optional[str] = None,
    shop_name: Optional[str] = None,
) -> models.UserProfile:
    """Create a seller (with a shop) or an admin (without one)."""
    username = (username or "").strip()
    if not username:
        raise ValidationError("Username is required.")
    _check_password(password)
    role, display_name, shop_id, shop_name = _profile_fields(
        role, display_name or username, shop_id, shop_name
    )
    profile = models.UserProfile(
        id=stock.new_id(),
        username=username,
        display_name=display_name,
        role=role,
        shop_id=shop_id,
        shop_name=shop_name,
    )
    async with transaction() as conn:
        if await _username_taken(conn, username):
            raise ValidationError(f"Username '{username}' is already taken.")
        await conn.execute(
            """
            INSERT INTO profiles
                (id, username, password_hash, display_name, role, shop_id, shop_name)
            VALUES (?, ?, ?, ?, ?, ?, ?);
            """,
            (
                profile.id,
                profile.username,
                generate_password_hash(password),
                profile.display_name,
                profile.role,
                profile.shop_id,
                profile.shop_name,
            ),
        )
    _logger.info(f"Created {role} profile '{username}'.")
    return profile


async def update_profile(
    profile_id: str,
    username: Optional[str] = None,
    display_name: Optional[str] = None,
    role: Optional[str] = None,
    shop_id: Optional[str] = None,
    shop_name: Optional[str] = None,
) -> Optional[models.UserProfile]:
    """
    Update only the provided fields. Turning a seller into an admin drops the shop.
    Return the updated profile, or None if it does not exist.
    """
    async with transaction() as conn:
        cur = await conn.execute(
            f"SELECT {_PROFILE_COLS} FROM profiles WHERE id = ?;", (profile_id,)
        )
        row = await cur.fetchone()
        await cur.close()
        if not row:
            return None
        current = _to_profile(row)

        new_username = current.username if username is None else username.strip()
        if not new_username:
            raise ValidationError("Username is required.")
        if new_username != current.username and await _username_taken(
            conn, new_username, profile_id
        ):
            raise ValidationError(f"Username '{new_username}' is already taken.")

        role_, display_name_, shop_id_, shop_name_ = _profile_fields(
            current.role if role is None else role,
            current.display_name if display_name is None else display_name,
            current.shop_id if shop_id is None else shop_id,
            current.shop_name if shop_name is None else shop_name,
        )
        updated = models.UserProfile(
            id=profile_id,
            username=new_username,
            display_name=display_name_,
            role=role_,
            shop_id=shop_id_,
            shop_name=shop_name_,
        )
        await conn.execute(
            """
            UPDATE profiles
            SET username = ?, display_name = ?, role = ?, shop_id = ?, shop_name = ?
            WHERE id = ?;
            """,
            (
                updated.username,
                updated.display_name,
                updated.role,
                updated.shop_id,
                updated.shop_name,
                profile_id,
            ),
        )
    return updated


async def change_password(profile_id: str, current: str, new: str) -> None:
    """A user's own password change; the current password must match."""
    _check_password(new)
    async with transaction() as conn:
        cur = await conn.execute(
            "SELECT password_hash FROM profiles WHERE id = ?;", (profile_id,)
        )
        row = await cur.fetchone()
        await cur.close()
        if not row or not check_password_hash(row["password_hash"], current or ""):
            raise InvalidCredentialsError()
        await conn.execute(
            "UPDATE profiles SET password_hash = ? WHERE id = ?;",
            (generate_password_hash(new), profile_id),
        )


async def reset_password(profile_id: str, new: str) -> bool:
    """Admin reset; returns False if the profile does not exist."""
    _check_password(new)
    async with connect() as conn:
        res = await conn.execute(
            "UPDATE profiles SET password_hash = ? WHERE id = ?;",
            (generate_password_hash(new), profile_id),
        )
        await conn.commit()
        return res.rowcount > 0


async def delete_profile(profile_id: str) -> bool:
    async with connect() as conn:
        res = await conn.execute("DELETE FROM profiles WHERE id = ?;", (profile_id,))
        await conn.commit()
        return res.rowcount > 0


# ---------------------------
# Inventory
# ---------------------------


async def _shop_inventory(
    conn: aiosqlite.Connection, shop_id: str
) -> List[models.InventoryItem]:
    cur = await conn.execute(
        f"""
        SELECT {_INVENTORY_COLS}
        FROM inventory
        WHERE shop_id = ?
        ORDER BY created_at DESC, product;
        """,
        (shop_id,),
    )
    rows = await cur.fetchall()
    await cur.close()
    return [_to_item(r) for r in rows]


async def _set_quantity(
    conn: aiosqlite.Connection, item_id: str, expected: int, new: int
) -> None:
    """
    Compare-and-swap on quantity: only writes if nobody changed it since it was read.
    Must run inside transaction() so a lost race rolls everything back.
    """
    res = await conn.execute(
        "UPDATE inventory SET quantity = ? WHERE id = ? AND quantity = ?;",
        (new, item_id, expected),
    )
    if res.rowcount != 1:
        raise PersistenceError(
            "Stock changed while saving, nothing was recorded. Please try again."
        )


async def _insert_item(conn: aiosqlite.Connection, item: models.InventoryItem) -> None:
    await conn.execute(
        """
        INSERT INTO inventory
            (id, shop_id, product, quantity, unit, threshold, desired_quantity)
        VALUES (?, ?, ?, ?, ?, ?, ?);
        """,
        (
            item.id,
            item.shop_id,
            item.product,
            item.quantity,
            item.unit,
            item.threshold,
            item.desired_quantity,
        ),
    )


async def _save_item(
    conn: aiosqlite.Connection,
    before: Sequence[models.InventoryItem],
    item: models.InventoryItem,
) -> None:
    """Insert a new record or CAS-update the quantity of an existing one."""
    old = next((i for i in before if i.id == item.id), None)
    if old is None:
        await _insert_item(conn, item)
    elif old.quantity != item.quantity:
        await _set_quantity(conn, item.id, old.quantity, item.quantity)


async def list_inventory(shop_id: str) -> List[models.InventoryItem]:
    """One shop's stock, newest records first."""
    async with connect() as conn:
        return await _shop_inventory(conn, shop_id)


async def list_all_inventory() -> List[models.InventoryItem]:
    async with connect() as conn:
        cur = await conn.execute(
            f"""
            SELECT {_INVENTORY_COLS}
            FROM inventory
            ORDER BY shop_id, created_at DESC, product;
            """
        )
        rows = await cur.fetchall()
        await cur.close()
    return [_to_item(r) for r in rows]


async def get_inventory_item(item_id: str) -> Optional[models.InventoryItem]:
    async with connect() as conn:
        cur = await conn.execute(
            f"SELECT {_INVENTORY_COLS} FROM inventory WHERE id = ?;", (item_id,)
        )
        row = await cur.fetchone()
        await cur.close()
    return _to_item(row) if row else None


async def add_stock(
    shop_id: str, product: str, quantity, unit: str
) -> models.InventoryItem:
    """
    Receive stock into a shop: increments the (product, unit) record or creates it.
    """
    async with transaction() as conn:
        before = await _shop_inventory(conn, shop_id)
        item = stock.add_stock(before, shop_id, product, quantity, unit)
        await _save_item(conn, before, item)
    _logger.info(f"[{shop_id}] stock of {item.product} ({item.unit}) now {item.quantity}.")
    return item


async def update_inventory_item(item_id: str, **fields) -> Optional[models.InventoryItem]:
    """
    Partial update of an inventory record (admin edit).
    Accepts product, quantity, unit, threshold, desired_quantity.
    Return the updated record, or None if it does not exist.
    """
    unknown = set(fields) - set(INVENTORY_FIELDS)
    if unknown:
        raise ValidationError(f"Cannot edit {', '.join(sorted(unknown))}.")

    values: Dict[str, object] = {}
    for name, raw in fields.items():
        if name == "product":
            product = (raw or "").strip()
            if not product:
                raise ValidationError("Product is required.")
            values[name] = product
        elif name == "unit":
            if raw not in stock.UNITS + stock.LEGACY_UNITS:
                raise ValidationError(f"Unknown unit '{raw}'.")
            values[name] = raw
        elif name == "desired_quantity" and raw is None:
            values[name] = None
        else:
            values[name] = stock.parse_quantity(raw, name.replace("_", " ").capitalize())

    if values:
        assignments = ", ".join(f"{name} = ?" for name in values)
        async with connect() as conn:
            res = await conn.execute(
                f"UPDATE inventory SET {assignments} WHERE id = ?;",
                (*values.values(), item_id),
            )
            await conn.commit()
            if res.rowcount == 0:
                return None
    return await get_inventory_item(item_id)


async def update_stock_levels(
    item_id: str, threshold, desired_quantity
) -> Optional[models.InventoryItem]:
    """Set the low-stock threshold and the replenishment target."""
    return await update_inventory_item(
        item_id, threshold=threshold, desired_quantity=desired_quantity
    )


async def delete_inventory_item(item_id: str) -> bool:
    async with connect() as conn:
        res = await conn.execute("DELETE FROM inventory WHERE id = ?;", (item_id,))
        await conn.commit()
        return res.rowcount > 0


async def convert_units(
    shop_id: str, product: str, from_unit: str, amount
) -> stock.Conversion:
    """Move `amount` bags/50kg units of a product into its kgs record."""
    async with transaction() as conn:
        before = await _shop_inventory(conn, shop_id)
        conversion = stock.convert_units(before, product, from_unit, amount)
        await _save_item(conn, before, conversion.source)
        await _save_item(conn, before, conversion.target)
    _logger.info(
        f"[{shop_id}] converted {conversion.withdrawn} {from_unit} of {product} "
        f"into {conversion.kg_equivalent} kgs."
    )
    return conversion


# ---------------------------
# Sales
# ---------------------------


async def record_sale(
    shop_id: str,
    customer_name: str,
    items: Sequence[models.SaleItem],
    when: Optional[date_type] = None,
) -> models.SalesTransaction:
    """
    Record a sale and take its items out of stock, as one database transaction.

    Fails with ProductNotFoundError / InsufficientStockError / ValidationError
    before anything is written; a concurrent stock change rolls everything back.
    """
    customer_name = (customer_name or "").strip()
    if not customer_name:
        raise ValidationError("Customer name is required.")
    when = when or date_type.today()
    txn = models.SalesTransaction(
        id=stock.new_id(),
        shop_id=shop_id,
        customer_name=customer_name,
        date=when.isoformat(),
        items=stock.sale_lines(items),
    )

    async with transaction() as conn:
        before = await _shop_inventory(conn, shop_id)
        after = stock.apply_sale(before, txn.items)
        for item in after:
            await _save_item(conn, before, item)

        await conn.execute(
            """
            INSERT INTO sales_transactions (id, shop_id, customer_name, date)
            VALUES (?, ?, ?, ?);
            """,
            (txn.id, txn.shop_id, txn.customer_name, txn.date),
        )
        await conn.executemany(
            """
            INSERT INTO sales_items (transaction_id, line_no, product, quantity, unit)
            VALUES (?, ?, ?, ?, ?);
            """,
            [
                (txn.id, line_no, i.product, i.quantity, i.unit)
                for line_no, i in enumerate(txn.items, start=1)
            ],
        )

    _logger.info(
        f"[{shop_id}] sale {txn.id} to {customer_name}: "
        + ", ".join(f"{i.quantity} {i.unit} {i.product}" for i in txn.items)
    )
    return txn


async def _fetch_transactions(
    conn: aiosqlite.Connection, shop_id: Optional[str]
) -> List[models.SalesTransaction]:
    where = "WHERE t.shop_id = ?" if shop_id is not None else ""
    params = (shop_id,) if shop_id is not None else ()

    cur = await conn.execute(
        f"""
        SELECT t.id, t.shop_id, t.customer_name, t.date, t.created_at,
               i.product, i.quantity, i.unit
        FROM sales_transactions t
        LEFT JOIN sales_items i ON i.transaction_id = t.id
        {where}
        ORDER BY t.created_at DESC, t.id, i.line_no;
        """,
        params,
    )
    rows = await cur.fetchall()
    await cur.close()

    grouped: Dict[str, dict] = {}
    for r in rows:
        rec = grouped.setdefault(
            r["id"],
            {
                "id": r["id"],
                "shop_id": r["shop_id"],
                "customer_name": r["customer_name"],
                "date": r["date"],
                "created_at": r["created_at"],
                "items": [],
            },
        )
        if r["product"] is not None:
            rec["items"].append(models.SaleItem(r["product"], int(r["quantity"]), r["unit"]))

    cur = await conn.execute(
        f"""
        SELECT id, shop_id, customer_name, date, created_at, product, quantity, unit
        FROM sales t
        {where}
        ORDER BY created_at DESC;
        """,
        params,
    )
    legacy_rows = await cur.fetchall()
    await cur.close()

    records: Iterable = list(grouped.values()) + [
        models.LegacySale(
            id=r["id"],
            shop_id=r["shop_id"],
            customer_name=r["customer_name"],
            date=r["date"],
            product=r["product"],
            quantity=int(r["quantity"]),
            unit=r["unit"],
            created_at=r["created_at"],
        )
        for r in legacy_rows
    ]
    txns = [normalize_sale(rec) for rec in records]
    txns.sort(key=lambda t: t.created_at or "", reverse=True)
    return txns


async def list_transactions(shop_id: str) -> List[models.SalesTransaction]:
    """All sales of a shop, both record shapes, newest first."""
    async with connect() as conn:
        return await _fetch_transactions(conn, shop_id)


async def list_all_transactions() -> List[models.SalesTransaction]:
    async with connect() as conn:
        return await _fetch_transactions(conn, None)


async def update_transaction(
    txn_id: str,
    customer_name: Optional[str] = None,
    date: Optional[str] = None,
) -> bool:
    """
    Admin edit of transaction-level fields. Line items and stock are untouched.
    Return True if a row was updated.
    """
    values: Dict[str, str] = {}
    if customer_name is not None:
        customer_name = customer_name.strip()
        if not customer_name:
            raise ValidationError("Customer name is required.")
        values["customer_name"] = customer_name
    if date is not None:
        values["date"] = _check_date(date)
    if not values:
        return False

    assignments = ", ".join(f"{name} = ?" for name in values)
    async with transaction() as conn:
        updated = 0
        for table in ("sales_transactions", "sales"):
            res = await conn.execute(
                f"UPDATE {table} SET {assignments} WHERE id = ?;",
                (*values.values(), txn_id),
            )
            updated += res.rowcount
    return updated > 0


async def delete_transaction(txn_id: str) -> bool:
    """Delete a sale of either shape. Stock is not given back."""
    async with transaction() as conn:
        deleted = 0
        for table in ("sales_transactions", "sales"):
            res = await conn.execute(f"DELETE FROM {table} WHERE id = ?;", (txn_id,))
            deleted += res.rowcount
    return deleted > 0
