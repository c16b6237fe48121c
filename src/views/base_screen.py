from textual import on, work
from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Container
from textual.events import ScreenResume
from textual.screen import Screen
from textual.widgets import Button, Footer, Header, Label, ListItem, ListView, Markdown

from utils.messages import UserLogoutMessage
from utils.pure import generate_markdown_table
from views.modal_dialog import QuitDialogModal, confirm


class Sidebar(Container):
    DEFAULT_CSS = """
    Sidebar { dock: left; width: 30; padding: 0 1; border-right: vkey $primary; }
    Sidebar ListView { height: auto; }
    """

    def compose(self) -> ComposeResult:
        yield Label("Account", id="label-info-1")
        yield Markdown("", id="md-userinfo")
        yield Button("Log out", id="btn-logout", variant="error")
        yield Label("Menu", id="label-info-2")
        yield ListView(
            *[
                ListItem(Label(label), id="list-menu-item-" + mode)
                for mode, label in self.app.MODE_LABELS.items()
            ],
            id="list-menu",
        )

    async def on_mount(self):
        await self.refresh_user_info()
        self.highlight_item(self.app.current_mode)

    async def refresh_user_info(self):
        state = self.app.state
        user = state.session.user
        rows = [["Signed in", "no"]]
        if user is not None:
            rows = [["Name", user.display_name], ["User", user.username or user.id]]
            if user.email:
                rows.append(["Email", user.email])
        rows.append(["Cart", f"{state.commerce.cart.item_count} item(s)"])
        rows.append(["Wishlist", f"{len(state.commerce.wishlist)} item(s)"])
        await self.query_one(Markdown).update(
            generate_markdown_table(None, [["", ""], *rows], ["l", "l"])
        )
        self.query_one("#btn-logout").display = user is not None

    async def on_list_view_selected(self, event: ListView.Selected):
        selected_mode = event.item.id.removeprefix("list-menu-item-")
        if self.app.current_mode != selected_mode:
            await self.app.switch_mode(selected_mode)

    @on(Button.Pressed, "#btn-logout")
    @work()
    async def handle_logout(self):
        if await self.app.push_screen_wait(confirm("Are you sure you want to log out?")):
            self.app.post_message(UserLogoutMessage())

    def highlight_item(self, mode_str: str):
        for item in self.query_one("#list-menu").children:
            item.highlighted = item.id == "list-menu-item-" + mode_str


class BaseScreen(Screen):
    """
    Inherited by all screens, contains common elements like
    headers, footers, sidebar, and keybindings.
    """

    BINDINGS = [
        Binding("ctrl+q", "quit", "Quit App", show=True),
    ]

    def __init__(self, sub_title: str = "", show_sidebar: bool = True):
        super().__init__()
        self.sub_title = sub_title
        self._show_sidebar = show_sidebar

    def compose(self) -> ComposeResult:
        if self._show_sidebar:
            yield Sidebar()
        yield Header()
        yield Footer(show_command_palette=False)

    async def refresh_state(self) -> None:
        """Re-read session and commerce state. Called by the app after any change."""
        if self._show_sidebar:
            await self.query_one(Sidebar).refresh_user_info()

    @on(ScreenResume)
    async def handle_resume(self):
        await self.refresh_state()

    @work()
    async def action_quit(self):
        await self.app.push_screen_wait(QuitDialogModal())
