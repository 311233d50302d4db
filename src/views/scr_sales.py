from __future__ import annotations

from datetime import date
from typing import List, Optional

from textual import on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical, VerticalScroll
from textual.events import ScreenResume
from textual.widgets import Button, Input, Label, MarkdownViewer, Select

import db.crud as crud
from core import sales
from core.errors import ShopError, ValidationError
from core.stock import find_item, parse_quantity
from db.models import InventoryItem, SaleItem, SalesTransaction
from utils.messages import (
    InventoryChangedMessage,
    ModeSwitchedMessage,
    SalesChangedMessage,
)
from utils.pure import date_groups_markdown, format_items, generate_markdown_table
from views.base_screen import BaseScreen

SORT_OPTIONS = [("Newest first", "date"), ("Product", "product"), ("Customer", "customer")]


def _date_or_none(raw: str) -> Optional[str]:
    """Empty means no bound; anything else must be YYYY-MM-DD."""
    raw = raw.strip()
    if not raw:
        return None
    try:
        return date.fromisoformat(raw).isoformat()
    except ValueError:
        raise ValidationError(f"'{raw}' is not a YYYY-MM-DD date.") from None


def _refill_select(select: Select, options: List[tuple]) -> None:
    """Replace options but keep the current choice if it still exists."""
    current = select.value
    select.set_options(options)
    if any(value == current for _, value in options):
        select.value = current


class SalesScreen(BaseScreen):
    """
    Record multi-item sales for the seller's shop and browse the sales history
    with search, filters and sorting.
    """

    def __init__(self) -> None:
        super().__init__()
        self._inventory: List[InventoryItem] = []
        self._transactions: List[SalesTransaction] = []
        self._pending: List[SaleItem] = []

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with VerticalScroll():
            yield Label("", id="label-sales-stats")
            with Vertical(id="div-new-sale"):
                yield Label("New Sale", classes="form-title")
                with Horizontal(classes="form-row"):
                    yield Input(placeholder="Customer name", id="input-customer")
                    yield Select([], prompt="Product", id="select-sale-product")
                    yield Input(placeholder="Qty", id="input-sale-qty", type="integer")
                    yield Button("Add Item", id="btn-add-item")
                yield Label("No items yet.", id="label-pending")
                with Horizontal(classes="form-btns"):
                    yield Button("Clear", id="btn-clear-sale")
                    yield Button("Record Sale", id="btn-record-sale", variant="success")
            with Horizontal(id="hort-filters", classes="form-row"):
                yield Input(placeholder="Search customer or product", id="input-search")
                yield Select(
                    [("All products", sales.ALL)],
                    value=sales.ALL,
                    allow_blank=False,
                    id="select-filter-product",
                )
                yield Select(
                    [("All customers", sales.ALL)],
                    value=sales.ALL,
                    allow_blank=False,
                    id="select-filter-customer",
                )
                yield Input(placeholder="From YYYY-MM-DD", id="input-date-from")
                yield Input(placeholder="To YYYY-MM-DD", id="input-date-to")
                yield Select(
                    SORT_OPTIONS, value="date", allow_blank=False, id="select-sort"
                )
            yield MarkdownViewer(id="md-sales", show_table_of_contents=False)

    @on(ScreenResume)
    @on(ModeSwitchedMessage)
    def handle_resume(self) -> None:
        self.reload()

    @on(SalesChangedMessage)
    @on(InventoryChangedMessage)
    def handle_data_changed(self, message) -> None:
        if message.shop_id in (None, self.app.state.shop_id):
            self.reload()

    @work(exclusive=True, group="sales")
    async def reload(self) -> None:
        shop_id = self.app.state.shop_id
        if not shop_id:
            return
        try:
            self._inventory = await crud.list_inventory(shop_id)
            self._transactions = await crud.list_transactions(shop_id)
        except ShopError as e:
            self.notify(str(e), severity="error")
            return

        _refill_select(
            self.query_one("#select-sale-product", Select),
            [
                (f"{i.product} ({i.quantity} {i.unit})", i.id)
                for i in self._inventory
                if i.quantity > 0
            ],
        )
        _refill_select(
            self.query_one("#select-filter-product", Select),
            [("All products", sales.ALL)]
            + [(p, p) for p in sales.distinct_products(self._transactions)],
        )
        _refill_select(
            self.query_one("#select-filter-customer", Select),
            [("All customers", sales.ALL)]
            + [(c, c) for c in sales.distinct_customers(self._transactions)],
        )
        self.render_history()

    # ---------- sales history ----------

    def _criteria(self) -> sales.SalesFilter:
        date_inputs = {
            "from": self.query_one("#input-date-from", Input),
            "to": self.query_one("#input-date-to", Input),
        }
        bounds = {}
        for name, widget in date_inputs.items():
            try:
                bounds[name] = _date_or_none(widget.value)
                widget.remove_class("-invalid")
            except ValidationError:
                # ignore the bound until it is a full date
                bounds[name] = None
                widget.add_class("-invalid")

        return sales.SalesFilter(
            search_term=self.query_one("#input-search", Input).value,
            product=self.query_one("#select-filter-product", Select).value,
            customer=self.query_one("#select-filter-customer", Select).value,
            date_from=bounds["from"],
            date_to=bounds["to"],
        )

    @on(Input.Changed, "#input-search")
    @on(Input.Changed, "#input-date-from")
    @on(Input.Changed, "#input-date-to")
    @on(Select.Changed, "#select-filter-product")
    @on(Select.Changed, "#select-filter-customer")
    @on(Select.Changed, "#select-sort")
    def render_history(self) -> None:
        criteria = self._criteria()
        sort_key = self.query_one("#select-sort", Select).value
        shown = sales.sort_transactions(
            sales.filter_transactions(self._transactions, criteria), sort_key
        )
        product = criteria.product if criteria.product != sales.ALL else None

        self.query_one("#label-sales-stats", Label).update(
            f"Total sold: {sales.total_quantity(self._transactions)}   "
            f"Sales: {len(self._transactions)}   "
            f"Customers: {len(sales.distinct_customers(self._transactions))}   "
            f"Showing: {len(shown)} (quantity {sales.total_quantity(shown, product)})"
        )

        if sort_key == "date":
            md = date_groups_markdown(sales.group_by_date(shown, product))
        elif shown:
            md = generate_markdown_table(
                ["Date", "Customer", "Items"],
                [[t.date, t.customer_name, format_items(t)] for t in shown],
                ["l", "l", "l"],
            )
        else:
            md = "_No sales match._"
        self.query_one("#md-sales", MarkdownViewer).document.update(
            "### Sales History\n\n" + md
        )

    # ---------- new sale ----------

    def _render_pending(self) -> None:
        label = self.query_one("#label-pending", Label)
        if not self._pending:
            label.update("No items yet.")
        else:
            label.update(
                "Items: " + ", ".join(f"{i.quantity} {i.unit} {i.product}" for i in self._pending)
            )

    @on(Input.Submitted, "#input-sale-qty")
    @on(Button.Pressed, "#btn-add-item")
    def handle_add_item(self) -> None:
        item_id = self.query_one("#select-sale-product", Select).value
        item = next((i for i in self._inventory if i.id == item_id), None)
        qty_input = self.query_one("#input-sale-qty", Input)
        if item is None:
            self.notify("Choose a product first.", severity="error")
            return
        try:
            qty = parse_quantity(qty_input.value, "Quantity", allow_zero=False)
        except ValidationError as e:
            self.notify(str(e), severity="error")
            qty_input.focus()
            return

        self._pending.append(SaleItem(item.product, qty, item.unit))
        qty_input.value = ""
        self._render_pending()

    @on(Button.Pressed, "#btn-clear-sale")
    def handle_clear(self) -> None:
        self._pending = []
        self._render_pending()

    @on(Button.Pressed, "#btn-record-sale")
    @work(exclusive=True)
    async def handle_record_sale(self) -> None:
        customer_input = self.query_one("#input-customer", Input)
        if not self._pending:
            self.notify("Add at least one item to the sale.", severity="error")
            return
        # stale picks (product sold out in another session) fail in the store anyway
        for line in self._pending:
            if find_item(self._inventory, line.product, line.unit) is None:
                self.notify(f"{line.product} is no longer stocked.", severity="error")
                return

        try:
            txn = await crud.record_sale(
                self.app.state.shop_id, customer_input.value, list(self._pending)
            )
        except ShopError as e:
            self.notify(str(e), severity="error")
            return

        self.notify(f"Sale recorded: {format_items(txn)} to {txn.customer_name}.")
        self._pending = []
        customer_input.value = ""
        self._render_pending()
        self.app.post_message(SalesChangedMessage(txn.shop_id))
        self.app.post_message(InventoryChangedMessage(txn.shop_id))
