from textual import on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.events import Key
from textual.widgets import Button, Input, Label

from clients.identity import DEMO_CREDENTIALS
from utils.messages import UserLoginMessage
from views.base_screen import BaseScreen
from views.modal_dialog import QuitDialogModal


class LoginScreen(BaseScreen):
    """
    Dismisses with True once the session manager reports a successful login,
    False if the visitor chooses to browse as a guest.
    """

    DEFAULT_CSS = """
    #div-login { width: 60; height: auto; margin: 2 4; }
    #label-login-error { color: $error; height: auto; }
    #div-login-btns { height: auto; }
    """

    def __init__(self):
        super().__init__(sub_title="Login", show_sidebar=False)

    def compose(self) -> ComposeResult:
        yield from super().compose()
        demo_user, demo_pwd = DEMO_CREDENTIALS[0]
        with Vertical(id="div-login"):
            yield Label("Username")
            yield Input(placeholder=demo_user, id="input-login-username")
            yield Label("Password")
            yield Input(placeholder="*********", password=True, id="input-login-pwd")
            yield Label("", id="label-login-error")
            with Horizontal(id="div-login-btns"):
                yield Button("Quit", id="btn-quit")
                yield Button("Browse as guest", id="btn-guest")
                yield Button("Use demo account", id="btn-demo")
                yield Button("Login", id="btn-login", variant="primary")
            yield Label(f"Demo: {demo_user} / {demo_pwd}", id="label-demo-hint")

    def on_mount(self):
        self.query_one("#input-login-username").focus()

    def on_key(self, event: Key) -> None:
        if event.key == "enter" and self.focused == self.query_one("#input-login-pwd"):
            self.handle_login_submit()

    def show_error(self, message: str) -> None:
        self.query_one("#label-login-error", Label).update(message)
        self.notify(message, severity="error")

    @on(Button.Pressed, "#btn-demo")
    def handle_demo(self) -> None:
        demo_user, demo_pwd = DEMO_CREDENTIALS[0]
        self.query_one("#input-login-username", Input).value = demo_user
        self.query_one("#input-login-pwd", Input).value = demo_pwd
        self.query_one("#label-login-error", Label).update("")

    @on(Button.Pressed, "#btn-login")
    @work(exclusive=True)
    async def handle_login_submit(self) -> None:
        username = self.query_one("#input-login-username", Input).value.strip()
        pwd = self.query_one("#input-login-pwd", Input).value

        if not username or not pwd:
            self.show_error("Username and password are required.")
            return

        button = self.query_one("#btn-login", Button)
        button.disabled = True
        try:
            result = await self.app.state.session.login(username, pwd)
        finally:
            button.disabled = False

        if result.success:
            self.notify(f"Hello {result.user.display_name}!")
            self.app.post_message(UserLoginMessage())
            self.dismiss(True)
        else:
            # typed credentials stay in place so the user can correct them
            self.show_error(result.error or "Login failed. Please check your credentials.")
            self.query_one("#input-login-pwd", Input).focus()

    @on(Button.Pressed, "#btn-guest")
    def handle_guest(self) -> None:
        self.dismiss(False)

    @on(Button.Pressed, "#btn-quit")
    def handle_quit_(self) -> None:
        self.app.push_screen(QuitDialogModal())
