from typing import List

from textual import on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.screen import ModalScreen
from textual.validation import Number
from textual.widgets import Button, Input, Label, Select

import db.crud as crud
from core.errors import ShopError
from core.stock import CONVERSION_RATES
from db.models import InventoryItem


class UnitConverterModal(ModalScreen[bool]):
    """
    Break bags or 50kg units of a product down into kgs.
    Returns True if stock was converted.
    """

    BINDINGS = [("escape", "cancel", "Cancel")]

    def __init__(self, convertible: List[InventoryItem]) -> None:
        super().__init__()
        self._items = convertible

    def compose(self) -> ComposeResult:
        with Vertical(id="div-form"):
            yield Label("Unit Converter", classes="form-title")
            yield Label("Stock to convert")
            yield Select(
                [
                    (f"{i.product} ({i.quantity} {i.unit})", i.id)
                    for i in self._items
                ],
                prompt="Choose product to convert",
                id="select-source",
            )
            yield Label("Quantity to convert")
            yield Input(
                placeholder="1", id="input-convert-qty", type="integer"
            )
            yield Label("", id="label-preview")
            with Horizontal(classes="form-btns"):
                yield Button("Cancel", id="btn-cancel")
                yield Button("Convert", id="btn-convert", variant="primary")

    def _selected(self) -> InventoryItem | None:
        value = self.query_one("#select-source", Select).value
        return next((i for i in self._items if i.id == value), None)

    def action_cancel(self) -> None:
        self.dismiss(False)

    @on(Button.Pressed, "#btn-cancel")
    def handle_cancel(self) -> None:
        self.dismiss(False)

    @on(Select.Changed, "#select-source")
    @on(Input.Changed, "#input-convert-qty")
    def update_preview(self) -> None:
        item = self._selected()
        qty_input = self.query_one("#input-convert-qty", Input)
        preview = self.query_one("#label-preview", Label)
        if item is None:
            preview.update("")
            return
        qty_input.validators = [Number(minimum=1, maximum=item.quantity)]
        raw = qty_input.value.strip()
        if not raw.isdigit():
            preview.update(f"Available: {item.quantity} {item.unit}")
            return
        kg = int(raw) * CONVERSION_RATES[item.unit]
        preview.update(f"Converting {raw} {item.unit} will give you {kg} kgs.")

    @on(Input.Submitted, "#input-convert-qty")
    @on(Button.Pressed, "#btn-convert")
    @work(exclusive=True)
    async def handle_convert(self) -> None:
        item = self._selected()
        if item is None:
            self.notify("Please choose the stock to convert.", severity="error")
            return
        qty = self.query_one("#input-convert-qty", Input).value
        try:
            conversion = await crud.convert_units(item.shop_id, item.product, item.unit, qty)
        except ShopError as e:
            self.notify(str(e), severity="error")
            return
        self.app.notify(
            f"Converted {conversion.withdrawn} {item.unit} to "
            f"{conversion.kg_equivalent} kgs of {item.product}."
        )
        self.dismiss(True)
