from __future__ import annotations

from typing import Dict, Optional

from textual import on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.events import ScreenResume
from textual.widgets import Button, DataTable

import db.crud as crud
from core.errors import ShopError, ValidationError
from db.models import UserProfile
from utils.messages import ModeSwitchedMessage, ProfilesChangedMessage
from views.base_screen import BaseScreen
from views.modal_dialog import ConfirmDeleteModal, SimpleDialogModal
from views.modal_edit_record import EditRecordModal
from views.modal_password import ResetPasswordModal


class UsersScreen(BaseScreen):
    """
    Admin user management: sellers (one shop each) and admins.
    """

    def __init__(self) -> None:
        super().__init__()
        self._profiles: Dict[str, UserProfile] = {}

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Vertical():
            yield DataTable(id="table-users")
            with Horizontal(classes="form-btns"):
                yield Button("New User", id="btn-new-user", variant="success")
                yield Button("Edit", id="btn-edit-user", variant="primary")
                yield Button("Reset Password", id="btn-reset-pwd")
                yield Button("Delete", id="btn-delete-user", variant="error")

    def on_mount(self) -> None:
        table = self.query_one(DataTable)
        table.cursor_type = "row"
        table.zebra_stripes = True
        table.add_columns("Username", "Name", "Role", "Shop ID", "Shop Name")

    @on(ScreenResume)
    @on(ModeSwitchedMessage)
    @on(ProfilesChangedMessage)
    @work(exclusive=True, group="users")
    async def reload(self) -> None:
        try:
            profiles = await crud.list_profiles()
        except ShopError as e:
            self.notify(str(e), severity="error")
            return
        self._profiles = {p.id: p for p in profiles}
        table = self.query_one(DataTable)
        table.clear()
        for p in profiles:
            table.add_row(
                p.username, p.display_name, p.role, p.shop_id, p.shop_name, key=p.id
            )

    def _selected(self) -> Optional[UserProfile]:
        table = self.query_one(DataTable)
        if table.row_count == 0:
            return None
        row_key, _ = table.coordinate_to_cell_key(table.cursor_coordinate)
        profile = self._profiles.get(row_key.value)
        if profile is None:
            self.notify("Select a user first.", severity="warning")
        return profile

    @on(Button.Pressed, "#btn-new-user")
    @work
    async def handle_new_user(self) -> None:
        created: list[UserProfile] = []

        async def save(values: Dict[str, str]) -> None:
            created.append(
                await crud.create_profile(
                    username=values["username"],
                    password=values["password"],
                    role=values["role"].strip().lower(),
                    display_name=values["display_name"],
                    shop_id=values["shop_id"],
                    shop_name=values["shop_name"],
                )
            )

        fields = [
            ("username", "Username", ""),
            ("password", "Password (6+ characters)", ""),
            ("role", "Role (seller or admin)", "seller"),
            ("display_name", "Display name", ""),
            ("shop_id", "Shop ID (sellers only)", ""),
            ("shop_name", "Shop name (sellers only)", ""),
        ]
        if await self.app.push_screen_wait(
            EditRecordModal("New user", fields, save, secret=("password",))
        ):
            await self.app.push_screen_wait(
                SimpleDialogModal(f"{created[0].username} has been added to the system.")
            )
            self.app.post_message(ProfilesChangedMessage())

    @on(Button.Pressed, "#btn-edit-user")
    @work
    async def handle_edit_user(self) -> None:
        profile = self._selected()
        if profile is None:
            return

        async def save(values: Dict[str, str]) -> None:
            role = values["role"].strip().lower()
            if profile.id == self.app.state.profile.id and role != profile.role:
                raise ValidationError("You cannot change your own role.")
            updated = await crud.update_profile(
                profile.id,
                username=values["username"],
                display_name=values["display_name"],
                role=role,
                shop_id=values["shop_id"],
                shop_name=values["shop_name"],
            )
            if updated is None:
                raise ValidationError("User no longer exists.")

        fields = [
            ("username", "Username", profile.username),
            ("display_name", "Display name", profile.display_name),
            ("role", "Role (seller or admin)", profile.role),
            ("shop_id", "Shop ID (sellers only)", profile.shop_id or ""),
            ("shop_name", "Shop name (sellers only)", profile.shop_name or ""),
        ]
        if await self.app.push_screen_wait(
            EditRecordModal(f"Edit {profile.username}", fields, save)
        ):
            self.notify(f"{profile.username} updated.")
            self.app.post_message(ProfilesChangedMessage())

    @on(Button.Pressed, "#btn-reset-pwd")
    def handle_reset_password(self) -> None:
        profile = self._selected()
        if profile is not None:
            self.app.push_screen(ResetPasswordModal(profile))

    @on(Button.Pressed, "#btn-delete-user")
    @work
    async def handle_delete_user(self) -> None:
        profile = self._selected()
        if profile is None:
            return
        if profile.id == self.app.state.profile.id:
            self.notify("You cannot delete your own account.", severity="error")
            return
        if not await self.app.push_screen_wait(ConfirmDeleteModal(f"user {profile.username}")):
            return
        try:
            await crud.delete_profile(profile.id)
        except ShopError as e:
            self.notify(str(e), severity="error")
            return
        self.notify(f"{profile.username} deleted.")
        self.app.post_message(ProfilesChangedMessage())
