from textual import on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.widgets import Button, Input, Label

import db.crud
from core.errors import InvalidCredentialsError, ShopError
from utils.messages import UserLoginMessage
from views.base_screen import BaseScreen
from views.modal_dialog import QuitDialogModal


class LoginScreen(BaseScreen):
    """
    Dismissed once a profile is stored in app.state.
    Accounts are created by an admin, there is no sign-up.
    """

    def __init__(self):
        super().__init__()
        self.configure(header_sub_title="Login", show_sidebar=False)

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Vertical(id="div-login"):
            yield Label("Username")
            yield Input(placeholder="kiambu_shop", id="input-login-user")
            yield Label("Password")
            yield Input(placeholder="*********", password=True, id="input-login-pwd")
            with Horizontal(id="div-login-btns"):
                yield Button("Quit", id="btn-quit")
                yield Button("Login", id="btn-login", variant="primary")

    def on_mount(self):
        self.query_one("#input-login-user").focus()

    @on(Input.Submitted, "#input-login-user")
    def handle_user_submitted(self) -> None:
        self.query_one("#input-login-pwd").focus()

    @on(Input.Submitted, "#input-login-pwd")
    @on(Button.Pressed, "#btn-login")
    @work(exclusive=True)
    async def handle_login_submit(self) -> None:
        username = self.query_one("#input-login-user", Input).value.strip()
        pwd = self.query_one("#input-login-pwd", Input).value

        if not username or not pwd:
            self.notify("Username or password cannot be empty!", severity="error")
            return

        try:
            profile = await db.crud.authenticate(username, pwd)
        except InvalidCredentialsError as e:
            self.notify(str(e), severity="error")
            input_login_pwd = self.query_one("#input-login-pwd", Input)
            input_login_pwd.value = ""
            input_login_pwd.focus()
            input_login_pwd.add_class("-invalid")
            return
        except ShopError as e:
            self.notify(str(e), severity="error")
            return

        self.app.state.login(profile)
        self.notify(f"Hello {profile.display_name}!")
        self.app.post_message(UserLoginMessage())
        self.dismiss()

    @on(Button.Pressed, "#btn-quit")
    def handle_quit_(self) -> None:
        self.app.push_screen(QuitDialogModal())
