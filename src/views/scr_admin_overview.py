from __future__ import annotations

from typing import Dict, List

from textual import on, work
from textual.app import ComposeResult
from textual.containers import Vertical
from textual.events import ScreenResume
from textual.widgets import MarkdownViewer, Select

import db.crud as crud
from core import sales, stock
from core.errors import ShopError
from db.models import InventoryItem, SalesTransaction
from utils.messages import InventoryChangedMessage, ModeSwitchedMessage, SalesChangedMessage
from utils.pure import date_groups_markdown, generate_markdown_table, inventory_markdown
from views.base_screen import BaseScreen


def _by_shop(records) -> Dict[str, list]:
    grouped: Dict[str, list] = {}
    for r in records:
        grouped.setdefault(r.shop_id, []).append(r)
    return grouped


class AdminOverviewScreen(BaseScreen):
    """
    Every shop at a glance, then the selected shop's stock and recent sales.
    """

    def __init__(self) -> None:
        super().__init__()
        self._inventory: Dict[str, List[InventoryItem]] = {}
        self._transactions: Dict[str, List[SalesTransaction]] = {}
        self._shop_names: Dict[str, str] = {}

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Vertical():
            yield Select([], prompt="Select shop", id="select-shop")
            yield MarkdownViewer(id="md-overview", show_table_of_contents=False)

    @on(ScreenResume)
    @on(ModeSwitchedMessage)
    @on(InventoryChangedMessage)
    @on(SalesChangedMessage)
    @work(exclusive=True, group="overview")
    async def reload(self) -> None:
        try:
            shops = await crud.list_shops()
            inventory = await crud.list_all_inventory()
            transactions = await crud.list_all_transactions()
        except ShopError as e:
            self.notify(str(e), severity="error")
            return

        self._inventory = _by_shop(inventory)
        self._transactions = _by_shop(transactions)
        self._shop_names = {s.shop_id: s.shop_name for s in shops}
        # shops that only exist through old records still show up
        for shop_id in list(self._inventory) + list(self._transactions):
            self._shop_names.setdefault(shop_id, shop_id)

        select = self.query_one("#select-shop", Select)
        current = select.value
        options = sorted(((name, sid) for sid, name in self._shop_names.items()))
        select.set_options(options)
        if current in self._shop_names:
            select.value = current
        elif options:
            select.value = options[0][1]
        self.render_overview()

    @on(Select.Changed, "#select-shop")
    def render_overview(self) -> None:
        rows = []
        for shop_id, name in sorted(self._shop_names.items(), key=lambda kv: kv[1]):
            items = self._inventory.get(shop_id, [])
            txns = self._transactions.get(shop_id, [])
            rows.append(
                [
                    name,
                    len(items),
                    len(stock.low_stock_items(items)),
                    len(txns),
                    sales.total_quantity(txns),
                    len(sales.distinct_customers(txns)),
                ]
            )
        md = "### All Shops\n\n" + generate_markdown_table(
            ["Shop", "Products", "Low Stock", "Sales", "Qty Sold", "Customers"],
            rows,
            ["l", "r", "r", "r", "r", "r"],
        )

        shop_id = self.query_one("#select-shop", Select).value
        if shop_id in self._shop_names:
            items = self._inventory.get(shop_id, [])
            txns = sales.sort_transactions(self._transactions.get(shop_id, []), "date")
            md += (
                f"\n\n### {self._shop_names[shop_id]}: Inventory\n\n"
                + inventory_markdown(items)
                + f"\n\n### {self._shop_names[shop_id]}: Sales by Date\n\n"
                + date_groups_markdown(sales.group_by_date(txns))
            )
        self.query_one("#md-overview", MarkdownViewer).document.update(md)
