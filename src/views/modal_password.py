from textual import on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.screen import ModalScreen
from textual.widgets import Button, Input, Label

import db.crud
from core.errors import ShopError, ValidationError
from db.models import UserProfile


class ChangePasswordModal(ModalScreen[bool]):
    """
    Own password change: asks for the current password.
    Returns True if the password was changed.
    """

    BINDINGS = [("escape", "cancel", "Cancel")]

    ask_current = True

    def __init__(self, profile: UserProfile) -> None:
        super().__init__()
        self._profile = profile

    def title_text(self) -> str:
        return "Change your password"

    def compose(self) -> ComposeResult:
        with Vertical(id="div-form"):
            yield Label(self.title_text(), classes="form-title")
            if self.ask_current:
                yield Label("Current password")
                yield Input(password=True, id="input-pwd-current")
            yield Label("New password (6+ characters)")
            yield Input(password=True, id="input-pwd-new")
            yield Label("Confirm new password")
            yield Input(password=True, id="input-pwd-confirm")
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

    async def save(self, new: str) -> None:
        current = self.query_one("#input-pwd-current", Input).value
        await db.crud.change_password(self._profile.id, current, new)

    @on(Input.Submitted, "#input-pwd-confirm")
    @on(Button.Pressed, "#btn-save")
    @work(exclusive=True)
    async def handle_save(self) -> None:
        new = self.query_one("#input-pwd-new", Input).value
        confirm = self.query_one("#input-pwd-confirm", Input).value
        try:
            if new != confirm:
                raise ValidationError("Passwords do not match.")
            await self.save(new)
        except ShopError as e:
            self.notify(str(e), severity="error")
            return
        self.app.notify(f"Password updated for {self._profile.username}.")
        self.dismiss(True)


class ResetPasswordModal(ChangePasswordModal):
    """Admin reset of another user's password, no current password needed."""

    ask_current = False

    def title_text(self) -> str:
        return f"Reset password for {self._profile.username}"

    async def save(self, new: str) -> None:
        if not await db.crud.reset_password(self._profile.id, new):
            raise ValidationError("User no longer exists.")
