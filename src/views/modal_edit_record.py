from typing import Awaitable, Callable, Dict, List, Tuple

from textual import on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.screen import ModalScreen
from textual.widgets import Button, Input, Label

from core.errors import ShopError

# (field name, label, current value)
Field = Tuple[str, str, str]
SaveCallback = Callable[[Dict[str, str]], Awaitable[None]]


class EditRecordModal(ModalScreen[bool]):
    """
    Form with one input per field. `on_save` gets the raw values and does the
    validation and the write; a ShopError keeps the form open.
    Returns True once saved.
    """

    BINDINGS = [("escape", "cancel", "Cancel")]

    def __init__(
        self,
        title: str,
        fields: List[Field],
        on_save: SaveCallback,
        secret: Tuple[str, ...] = (),
    ) -> None:
        super().__init__()
        self._secret = secret
        self._title = title
        self._fields = fields
        self._on_save = on_save

    def compose(self) -> ComposeResult:
        with Vertical(id="div-form"):
            yield Label(self._title, classes="form-title")
            for name, label, value in self._fields:
                yield Label(label)
                yield Input(
                    value=value,
                    id=f"input-field-{name}",
                    password=name in self._secret,
                )
            with Horizontal(classes="form-btns"):
                yield Button("Cancel", id="btn-cancel")
                yield Button("Save", id="btn-save", variant="primary")

    def on_mount(self) -> None:
        self.query(Input).first().focus()

    def action_cancel(self) -> None:
        self.dismiss(False)

    @on(Button.Pressed, "#btn-cancel")
    def handle_cancel(self) -> None:
        self.dismiss(False)

    @on(Input.Submitted)
    @on(Button.Pressed, "#btn-save")
    @work(exclusive=True)
    async def handle_save(self) -> None:
        values = {
            name: self.query_one(f"#input-field-{name}", Input).value
            for name, _, _ in self._fields
        }
        try:
            await self._on_save(values)
        except ShopError as e:
            self.notify(str(e), severity="error")
            return
        self.dismiss(True)
