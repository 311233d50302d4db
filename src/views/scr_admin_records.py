from __future__ import annotations

from typing import Dict, List, Optional

from textual import on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.events import ScreenResume
from textual.widgets import Button, DataTable, TabbedContent, TabPane

import db.crud as crud
from core.errors import ShopError, ValidationError
from core.stock import replenishment_quantity
from db.models import InventoryItem, SalesTransaction
from utils.messages import InventoryChangedMessage, ModeSwitchedMessage, SalesChangedMessage
from utils.pure import format_items, stock_status
from views.base_screen import BaseScreen
from views.modal_dialog import ConfirmDeleteModal
from views.modal_edit_record import EditRecordModal


def _selected_key(table: DataTable) -> Optional[str]:
    if table.row_count == 0:
        return None
    row_key, _ = table.coordinate_to_cell_key(table.cursor_coordinate)
    return row_key.value


class AdminRecordsScreen(BaseScreen):
    """
    Raw inventory and sales records of every shop, with edit and delete.
    """

    def __init__(self) -> None:
        super().__init__()
        self._inventory: Dict[str, InventoryItem] = {}
        self._transactions: Dict[str, SalesTransaction] = {}

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with TabbedContent(id="tabs-records"):
            with TabPane("Inventory", id="tab-inventory"):
                with Vertical():
                    yield DataTable(id="table-admin-inventory")
                    with Horizontal(classes="form-btns"):
                        yield Button("Edit", id="btn-edit-inventory", variant="primary")
                        yield Button("Delete", id="btn-delete-inventory", variant="error")
            with TabPane("Sales", id="tab-sales"):
                with Vertical():
                    yield DataTable(id="table-admin-sales")
                    with Horizontal(classes="form-btns"):
                        yield Button("Edit", id="btn-edit-sale", variant="primary")
                        yield Button("Delete", id="btn-delete-sale", variant="error")

    def on_mount(self) -> None:
        inv_table = self.query_one("#table-admin-inventory", DataTable)
        inv_table.add_columns(
            "Shop", "Product", "Qty", "Unit", "Threshold", "Target", "To Order", "Status"
        )
        sales_table = self.query_one("#table-admin-sales", DataTable)
        sales_table.add_columns("Shop", "Date", "Customer", "Items")
        for table in (inv_table, sales_table):
            table.cursor_type = "row"
            table.zebra_stripes = True

    @on(ScreenResume)
    @on(ModeSwitchedMessage)
    @on(InventoryChangedMessage)
    @on(SalesChangedMessage)
    @work(exclusive=True, group="records")
    async def reload(self) -> None:
        try:
            inventory: List[InventoryItem] = await crud.list_all_inventory()
            transactions: List[SalesTransaction] = await crud.list_all_transactions()
        except ShopError as e:
            self.notify(str(e), severity="error")
            return
        self._inventory = {i.id: i for i in inventory}
        self._transactions = {t.id: t for t in transactions}

        inv_table = self.query_one("#table-admin-inventory", DataTable)
        inv_table.clear()
        for i in inventory:
            inv_table.add_row(
                i.shop_id,
                i.product,
                i.quantity,
                i.unit,
                i.threshold,
                "-" if i.desired_quantity is None else i.desired_quantity,
                replenishment_quantity(i),
                stock_status(i),
                key=i.id,
            )

        sales_table = self.query_one("#table-admin-sales", DataTable)
        sales_table.clear()
        for t in transactions:
            sales_table.add_row(t.shop_id, t.date, t.customer_name, format_items(t), key=t.id)

    # ---------- inventory ----------

    @on(Button.Pressed, "#btn-edit-inventory")
    @work
    async def handle_edit_inventory(self) -> None:
        item = self._inventory.get(
            _selected_key(self.query_one("#table-admin-inventory", DataTable))
        )
        if item is None:
            self.notify("Select an inventory record first.", severity="warning")
            return

        async def save(values: Dict[str, str]) -> None:
            desired = values["desired_quantity"].strip()
            updated = await crud.update_inventory_item(
                item.id,
                product=values["product"],
                quantity=values["quantity"],
                unit=values["unit"].strip(),
                threshold=values["threshold"],
                desired_quantity=desired or None,
            )
            if updated is None:
                raise ValidationError("Record no longer exists.")

        fields = [
            ("product", "Product", item.product),
            ("quantity", "Quantity", str(item.quantity)),
            ("unit", "Unit (bags, kgs, 50kg, kg)", item.unit),
            ("threshold", "Low-stock threshold", str(item.threshold)),
            (
                "desired_quantity",
                "Target quantity (blank: twice the threshold)",
                "" if item.desired_quantity is None else str(item.desired_quantity),
            ),
        ]
        title = f"Edit {item.product} ({item.unit}) at {item.shop_id}"
        if await self.app.push_screen_wait(EditRecordModal(title, fields, save)):
            self.notify("Inventory updated successfully.")
            self.app.post_message(InventoryChangedMessage(item.shop_id))

    @on(Button.Pressed, "#btn-delete-inventory")
    @work
    async def handle_delete_inventory(self) -> None:
        item = self._inventory.get(
            _selected_key(self.query_one("#table-admin-inventory", DataTable))
        )
        if item is None:
            self.notify("Select an inventory record first.", severity="warning")
            return
        if not await self.app.push_screen_wait(
            ConfirmDeleteModal(f"{item.product} ({item.unit}) at {item.shop_id}")
        ):
            return
        try:
            deleted = await crud.delete_inventory_item(item.id)
        except ShopError as e:
            self.notify(str(e), severity="error")
            return
        if deleted:
            self.notify("Inventory item deleted successfully.")
        else:
            self.notify("Record was already gone.", severity="warning")
        self.app.post_message(InventoryChangedMessage(item.shop_id))

    # ---------- sales ----------

    @on(Button.Pressed, "#btn-edit-sale")
    @work
    async def handle_edit_sale(self) -> None:
        txn = self._transactions.get(
            _selected_key(self.query_one("#table-admin-sales", DataTable))
        )
        if txn is None:
            self.notify("Select a sales record first.", severity="warning")
            return

        async def save(values: Dict[str, str]) -> None:
            if not await crud.update_transaction(
                txn.id, customer_name=values["customer_name"], date=values["date"]
            ):
                raise ValidationError("Record no longer exists.")

        fields = [
            ("customer_name", "Customer", txn.customer_name),
            ("date", "Date (YYYY-MM-DD)", txn.date),
        ]
        if await self.app.push_screen_wait(
            EditRecordModal(f"Edit sale: {format_items(txn)}", fields, save)
        ):
            self.notify("Sales record updated successfully.")
            self.app.post_message(SalesChangedMessage(txn.shop_id))

    @on(Button.Pressed, "#btn-delete-sale")
    @work
    async def handle_delete_sale(self) -> None:
        txn = self._transactions.get(
            _selected_key(self.query_one("#table-admin-sales", DataTable))
        )
        if txn is None:
            self.notify("Select a sales record first.", severity="warning")
            return
        if not await self.app.push_screen_wait(
            ConfirmDeleteModal(f"the sale to {txn.customer_name} on {txn.date}")
        ):
            return
        try:
            deleted = await crud.delete_transaction(txn.id)
        except ShopError as e:
            self.notify(str(e), severity="error")
            return
        if deleted:
            self.notify("Sales record deleted successfully.")
        else:
            self.notify("Record was already gone.", severity="warning")
        self.app.post_message(SalesChangedMessage(txn.shop_id))
