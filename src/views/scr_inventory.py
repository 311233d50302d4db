from __future__ import annotations

from typing import List

from textual import on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.events import ScreenResume
from textual.suggester import SuggestFromList
from textual.validation import Number
from textual.widgets import Button, DataTable, Input, Label, Select

import db.crud as crud
from core import stock
from core.errors import ShopError
from db.models import InventoryItem
from utils.messages import InventoryChangedMessage, ModeSwitchedMessage
from utils.pure import INVENTORY_HEADERS, inventory_rows
from views.base_screen import BaseScreen
from views.modal_convert import UnitConverterModal


class InventoryScreen(BaseScreen):
    """
    Seller's stock for their own shop: levels, low-stock flags, how much to order.
    Stock is received here and bags/50kg units can be broken down into kgs.
    """

    def __init__(self) -> None:
        super().__init__()
        self._inventory: List[InventoryItem] = []

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Vertical():
            yield Label("", id="label-low-stock")
            yield DataTable(id="table-inventory")
            with Horizontal(id="hort-add-stock"):
                with Vertical():
                    yield Label("Product")
                    yield Input(
                        placeholder="Dairy Meal",
                        id="input-product",
                        suggester=SuggestFromList(
                            stock.PRODUCT_SUGGESTIONS, case_sensitive=False
                        ),
                    )
                with Vertical():
                    yield Label("Quantity")
                    yield Input(
                        placeholder="10",
                        id="input-quantity",
                        type="integer",
                        validators=[Number(minimum=1)],
                    )
                with Vertical():
                    yield Label("Unit")
                    yield Select(
                        [(u, u) for u in stock.UNITS],
                        value="bags",
                        allow_blank=False,
                        id="select-unit",
                    )
                with Vertical(classes="div-btns"):
                    yield Button("Add Stock", id="btn-add-stock", variant="success")
                    yield Button("Convert Units", id="btn-convert")

    def on_mount(self) -> None:
        table = self.query_one(DataTable)
        table.cursor_type = "row"
        table.zebra_stripes = True
        table.add_columns(*INVENTORY_HEADERS)

    @on(ScreenResume)
    @on(ModeSwitchedMessage)
    def handle_resume(self) -> None:
        self.reload()

    @on(InventoryChangedMessage)
    def handle_inventory_changed(self, message: InventoryChangedMessage) -> None:
        if message.shop_id in (None, self.app.state.shop_id):
            self.reload()

    @work(exclusive=True, group="inventory")
    async def reload(self) -> None:
        shop_id = self.app.state.shop_id
        if not shop_id:
            return
        try:
            self._inventory = await crud.list_inventory(shop_id)
        except ShopError as e:
            self.notify(str(e), severity="error")
            return

        table = self.query_one(DataTable)
        table.clear()
        for item, row in zip(self._inventory, inventory_rows(self._inventory)):
            table.add_row(*row, key=item.id)

        low = stock.low_stock_items(self._inventory)
        label = self.query_one("#label-low-stock", Label)
        if low:
            label.update(
                f"{len(low)} item(s) low on stock: "
                + ", ".join(f"{i.product} ({i.unit})" for i in low)
            )
            label.add_class("-warning")
        else:
            label.update("All stock above threshold.")
            label.remove_class("-warning")

    @on(Input.Submitted, "#input-quantity")
    @on(Button.Pressed, "#btn-add-stock")
    @work(exclusive=True)
    async def handle_add_stock(self) -> None:
        product_input = self.query_one("#input-product", Input)
        qty_input = self.query_one("#input-quantity", Input)
        unit = self.query_one("#select-unit", Select).value

        try:
            item = await crud.add_stock(
                self.app.state.shop_id, product_input.value, qty_input.value, unit
            )
        except ShopError as e:
            self.notify(str(e), severity="error")
            return

        self.notify(f"{item.product}: {item.quantity} {item.unit} in stock.")
        product_input.value = ""
        qty_input.value = ""
        product_input.focus()
        self.app.post_message(InventoryChangedMessage(item.shop_id))

    @on(Button.Pressed, "#btn-convert")
    @work
    async def handle_convert(self) -> None:
        convertible = [
            i
            for i in self._inventory
            if i.unit in stock.CONVERSION_RATES and i.quantity > 0
        ]
        if not convertible:
            self.notify(
                "No items available for conversion. Add bags or 50kg units first.",
                severity="warning",
            )
            return
        if await self.app.push_screen_wait(UnitConverterModal(convertible)):
            self.app.post_message(InventoryChangedMessage(self.app.state.shop_id))
