from textual import on, work
from textual.app import ComposeResult
from textual.binding import Binding
from textual.events import ScreenResume
from textual.containers import Container
from textual.screen import Screen
from textual.widgets import Button, Footer, Header, Label, ListItem, ListView, Markdown

from utils.messages import ModeSwitchedMessage, UserLogoutMessage
from utils.pure import generate_markdown_table
from views.modal_dialog import DialogModal, QuitDialogModal
from views.modal_password import ChangePasswordModal


class Sidebar(Container):
    init_mode = ""
    shown_profile_id = None

    def compose(self) -> ComposeResult:
        yield Label("User Info", id="label-info-1")
        yield Markdown("", id="md-userinfo")
        with Container(id="div-user-btns"):
            yield Button("Password", id="btn-password")
            yield Button("Log out", id="btn-logout", variant="error")
        yield Label("Menu", id="label-info-2")
        yield ListView(id="list-menu")

    async def on_mount(self):
        self.init_mode = self.app.current_mode
        await self.load_profile()

    async def load_profile(self):
        """
        Render user info and the role's menu. Screens outlive a logout,
        so this runs again whenever the screen resumes for a new profile.
        """
        profile = self.app.state.profile
        if not profile or profile.id == self.shown_profile_id:
            return
        self.shown_profile_id = profile.id

        table_rows = [
            ["User", profile.username],
            ["Name", profile.display_name],
            ["Role", "Administrator" if profile.is_admin else "Seller"],
        ]
        if not profile.is_admin:
            table_rows.append(["Shop", profile.shop_name])
        md_table_str = generate_markdown_table(None, table_rows, ["l", "l"])
        await self.query_one(Markdown).update(md_table_str)

        modes = self.app.ADMIN_MODES if profile.is_admin else self.app.SELLER_MODES
        list_menu: ListView = self.query_one("#list-menu")
        await list_menu.clear()
        await list_menu.extend(
            [ListItem(Label(v), id="list-menu-item-" + k) for k, v in modes.items()]
        )
        self.highlight_item(self.init_mode)

    async def on_list_view_selected(self, event: ListView.Selected):
        selected_mode = event.item.id.removeprefix("list-menu-item-")
        self.highlight_item(self.init_mode)
        if self.app.current_mode != selected_mode:
            self.post_message(ModeSwitchedMessage(self.app.current_mode, selected_mode))
            await self.app.switch_mode(selected_mode)

    @on(Button.Pressed, "#btn-logout")
    @work
    async def handle_logout(self):
        if not await self.app.push_screen_wait(
            DialogModal(
                "Are you sure you want to log out?",
                primary_text="Yes",
                secondary_text="No",
                tone="warning",
            )
        ):
            return

        self.post_message(UserLogoutMessage())

    @on(Button.Pressed, "#btn-password")
    def handle_password(self):
        self.app.push_screen(ChangePasswordModal(self.app.state.profile))

    def highlight_item(self, mode_str: str):
        list_menu = self.query_one("#list-menu")
        for item in list_menu.children:
            item.highlighted = item.id == "list-menu-item-" + mode_str


class BaseScreen(Screen):
    """
    Inherited by all screens, contains common elements like
    headers, footers, sidebar, and keybindings.
    """

    BINDINGS = [
        Binding("ctrl+z", "quit", "Quit App", show=True),
    ]

    def __init__(self):
        super().__init__()

        self.configure()

    def configure(
        self,
        header_sub_title: str = "",
        show_sidebar: bool = True,
    ) -> None:
        """
        configure behavior of the base screen
        :return:
        """

        self.app.title = "Feed Store Manager"
        self.sub_title = header_sub_title
        for k, v in self.app.MODES.items():
            if isinstance(self, v):
                self.sub_title = self.app.SELLER_MODES.get(
                    k, self.app.ADMIN_MODES.get(k, header_sub_title)
                )

        self._show_sidebar = show_sidebar

    def compose(self) -> ComposeResult:
        if self._show_sidebar:
            yield Sidebar()
        yield Header()
        yield Footer(show_command_palette=False)

    @on(ScreenResume)
    async def handle_screen_resume(self):
        for sidebar in self.query(Sidebar):
            await sidebar.load_profile()

    @work()
    async def action_quit(self):
        await self.app.push_screen_wait(QuitDialogModal())
