import locale

from textual import on, work
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.widgets import LoadingIndicator

import db.crud
from core.errors import ShopError
from utils.logger import get_logger
from utils.messages import (
    InventoryChangedMessage,
    ModeSwitchedMessage,
    ProfilesChangedMessage,
    QuitRequestedMessage,
    SalesChangedMessage,
    UserLoginMessage,
    UserLogoutMessage,
)
from utils.state import SessionState
from views.scr_admin_overview import AdminOverviewScreen
from views.scr_admin_records import AdminRecordsScreen
from views.scr_inventory import InventoryScreen
from views.scr_login import LoginScreen
from views.scr_sales import SalesScreen
from views.scr_users import UsersScreen

_logger = get_logger(__name__)


class ShopApp(App):
    BINDINGS = [
        Binding("ctrl+t", "switch_light", "Toggle Theme", show=True),
    ]

    MODES = {
        "inventory": InventoryScreen,
        "sales": SalesScreen,
        "overview": AdminOverviewScreen,
        "records": AdminRecordsScreen,
        "users": UsersScreen,
    }

    SELLER_MODES = {"inventory": "Inventory", "sales": "Sales"}
    ADMIN_MODES = {"overview": "Overview", "records": "Records", "users": "Users"}

    CSS_PATH = [
        "styles/index.tcss",
        "styles/login.tcss",
        "styles/forms.tcss",
    ]

    state: SessionState

    def __init__(self):
        super().__init__()
        self.state = SessionState()

    def compose(self) -> ComposeResult:
        yield LoadingIndicator()

    async def on_mount(self) -> None:
        self.main_flow()

    def action_switch_light(self):
        if self.theme == "textual-dark":
            self.theme = "solarized-light"
        else:
            self.theme = "textual-dark"
        self.notify(f"Theme changed to {self.theme}")

    # data-changed messages do not bubble; pass a copy down to whatever is showing
    @on(InventoryChangedMessage)
    def forward_inventory_changed(self, message: InventoryChangedMessage):
        self.screen.post_message(InventoryChangedMessage(message.shop_id))

    @on(SalesChangedMessage)
    def forward_sales_changed(self, message: SalesChangedMessage):
        self.screen.post_message(SalesChangedMessage(message.shop_id))

    @on(ProfilesChangedMessage)
    def forward_profiles_changed(self):
        self.screen.post_message(ProfilesChangedMessage())

    @on(UserLoginMessage)
    def handle_user_login(self):
        _logger.info(f"User '{self.state.profile.username}' logged in ({self.state.role}).")

    @on(UserLogoutMessage)
    @work
    async def handle_user_logout(self):
        _logger.info(f"User '{self.state.profile.username}' logged out.")
        self.state.logout()
        self.notify("Logout successful.")
        self.main_flow()

    @on(QuitRequestedMessage)
    def handle_quit(self):
        # the session file stays so the next start skips the login
        self.exit()

    async def _restore_session(self) -> bool:
        """
        Reuse the profile saved by the last run, re-read from the database
        so a deleted account or a changed role does not slip through.
        """
        saved = self.state.restore()
        if saved is None:
            return False
        try:
            current = await db.crud.get_profile(saved.id)
        except ShopError as e:
            _logger.warning(f"Could not verify saved session: {e}")
            current = None
        if current is None:
            self.state.logout()
            return False
        self.state.login(current)
        _logger.info(f"Restored session of '{current.username}'.")
        return True

    @work
    async def main_flow(self):
        if not await self._restore_session():
            await self.push_screen_wait(LoginScreen())

        mode = "overview" if self.state.profile.is_admin else "inventory"
        if self.current_mode != mode:
            self.post_message(ModeSwitchedMessage(self.current_mode, mode))
            await self.switch_mode(mode)


def main():
    # product and customer sorts collate by the user's locale
    try:
        locale.setlocale(locale.LC_COLLATE, "")
    except locale.Error as e:
        _logger.warning(f"Falling back to the C collation: {e}")
    app = ShopApp()
    app.run()


if __name__ == "__main__":
    main()
