from typing import Iterable, List, Literal, Optional

from core.sales import DateGroup
from core.stock import is_low_stock, replenishment_quantity
from db.models import InventoryItem, SalesTransaction


def _cell(value) -> str:
    # free text (customer names, products) must not break the table
    return str(value if value is not None else "-").replace("|", "\\|").replace(
        "\n", " "
    )


def generate_markdown_table(
    headers: Optional[List[str]],
    rows: List[List[str]],
    aligns: Optional[List[Literal["l", "c", "r"]]] = None,
) -> str:
    """
    Generate a Markdown table.

    Args:
        headers: List of column headers, or None to use first row as headers.
        rows: List of rows, each a list of values; None renders as "-".
        aligns: List of alignments ('l', 'c', 'r') for each column.
                Defaults to all center ('c').

    Returns:
        str: Markdown formatted table, "" when there is nothing to show.
    """
    if not rows and not headers:
        return ""

    if not headers:
        headers, rows = rows[0], rows[1:]

    headers = [_cell(h) for h in headers]
    num_cols = len(headers)
    if aligns is None:
        aligns = ["c"] * num_cols
    elif len(aligns) != num_cols:
        raise ValueError("Length of aligns must match number of headers.")

    align_map = {"l": ":---", "c": ":---:", "r": "---:"}
    lines = [
        "| " + " | ".join(headers) + " |",
        "| " + " | ".join(align_map[a] for a in aligns) + " |",
    ]
    lines += ["| " + " | ".join(_cell(v) for v in row) + " |" for row in rows]
    return "\n".join(lines)


def format_items(txn: SalesTransaction) -> str:
    """'3 bags Dairy Meal, 5 kgs Broiler Starter'"""
    return ", ".join(f"{i.quantity} {i.unit} {i.product}" for i in txn.items)


def stock_status(item: InventoryItem) -> str:
    return "LOW" if is_low_stock(item) else "OK"


def inventory_rows(items: Iterable[InventoryItem], with_shop: bool = False) -> List[list]:
    rows = []
    for item in items:
        row = [
            item.product,
            item.quantity,
            item.unit,
            item.threshold,
            item.desired_quantity if item.desired_quantity is not None else "2 x threshold",
            replenishment_quantity(item),
            stock_status(item),
        ]
        rows.append([item.shop_id, *row] if with_shop else row)
    return rows


INVENTORY_HEADERS = ["Product", "Qty", "Unit", "Threshold", "Target", "To Order", "Status"]


def inventory_markdown(items: List[InventoryItem], with_shop: bool = False) -> str:
    if not items:
        return "_No stock recorded yet._"
    headers = (["Shop"] if with_shop else []) + INVENTORY_HEADERS
    aligns = ["l"] * (len(headers) - 6) + ["r", "l", "r", "r", "r", "c"]
    return generate_markdown_table(headers, inventory_rows(items, with_shop), aligns)


def date_groups_markdown(groups: List[DateGroup]) -> str:
    """Sales history, one section per day."""
    if not groups:
        return "_No sales match._"
    parts = []
    for g in groups:
        parts.append(
            f"#### {g.date}\n\n"
            f"Total quantity: **{g.total_quantity}**, "
            f"customers: {', '.join(g.customers)}\n"
        )
        parts.append(
            generate_markdown_table(
                ["Customer", "Items"],
                [[t.customer_name, format_items(t)] for t in g.transactions],
                ["l", "l"],
            )
        )
    return "\n\n".join(parts)
