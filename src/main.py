from typing import Optional

from textual import on, work
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.widgets import LoadingIndicator

from services.session import SessionManager, SessionState
from utils.logger import get_logger
from utils.messages import (
    CartChangedMessage,
    QuitRequestedMessage,
    SessionChangedMessage,
    UserLoginMessage,
    UserLogoutMessage,
    WishlistChangedMessage,
)
from utils.state import StorefrontState
from views.base_screen import BaseScreen
from views.scr_cart import CartScreen
from views.scr_login import LoginScreen
from views.scr_prod_search import ProdSearchScreen
from views.scr_wishlist import WishlistScreen

_logger = get_logger(__name__)


class StorefrontApp(App):
    TITLE = "Storefront"

    BINDINGS = [
        Binding("ctrl+t", "switch_light", "Toggle Theme", show=True),
    ]

    MODES = {
        "prod_search": ProdSearchScreen,
        "cart": CartScreen,
        "wishlist": WishlistScreen,
    }

    MODE_LABELS = {
        "prod_search": "Products",
        "cart": "Cart",
        "wishlist": "Wishlist",
    }

    state: StorefrontState

    def __init__(self, state: Optional[StorefrontState] = None):
        super().__init__()
        self.state = state or StorefrontState.create()
        self.state.session.add_listener(self._on_session_change)

    def compose(self) -> ComposeResult:
        yield LoadingIndicator()

    async def on_mount(self) -> None:
        self.main_flow()

    def _on_session_change(self, state: SessionState, _session: SessionManager) -> None:
        self.post_message(SessionChangedMessage(state))

    def action_switch_light(self):
        if self.theme == "textual-dark":
            self.theme = "solarized-light"
        else:
            self.theme = "textual-dark"
        self.notify(f"Theme changed to {self.theme}")

    @on(SessionChangedMessage)
    @on(CartChangedMessage)
    @on(WishlistChangedMessage)
    @on(UserLoginMessage)
    async def handle_state_change(self) -> None:
        # messages bubble up, not down; push the change into the active screen
        if isinstance(self.screen, BaseScreen):
            await self.screen.refresh_state()

    @on(UserLogoutMessage)
    @work
    async def handle_user_logout(self):
        self.state.logout()
        self.notify("Logout successful.")
        self.main_flow()

    @on(QuitRequestedMessage)
    def handle_quit(self):
        self.exit()

    @work(exclusive=True)
    async def main_flow(self):
        if self.state.session.state is SessionState.BOOTSTRAPPING:
            await self.state.start()

        if not self.state.session.is_authenticated:
            await self.push_screen_wait(LoginScreen())

        await self.switch_mode("prod_search")


def main() -> None:
    StorefrontApp().run()


if __name__ == "__main__":
    main()
