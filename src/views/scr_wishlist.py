from textual import on
from textual.app import ComposeResult
from textual.containers import HorizontalGroup, VerticalScroll
from textual.widgets import Button, Label

from db.models import WishlistItem
from utils.messages import CartChangedMessage, WishlistChangedMessage
from utils.pure import format_money
from views.base_screen import BaseScreen


class WishlistItemWidget(HorizontalGroup):
    DEFAULT_CSS = """
    WishlistItemWidget { height: auto; padding: 0 1; }
    WishlistItemWidget Label { padding: 1 1; }
    WishlistItemWidget .name { width: 1fr; }
    """

    def __init__(self, item: WishlistItem):
        super().__init__()
        self.item = item

    def compose(self):
        product = self.item.product
        yield Label(product.title, classes="name")
        yield Label(format_money(product.discounted_price), classes="price")
        yield Button(
            "Move to Cart", id="btn-move", variant="primary", disabled=product.stock < 1
        )
        yield Button("Remove", id="btn-remove", variant="error")

    @on(Button.Pressed, "#btn-move")
    def handle_move(self):
        if self.app.state.commerce.move_to_cart(self.item):
            self.notify(f"Moved {self.item.product.title} to cart.")
            self.app.post_message(CartChangedMessage())
        else:
            self.notify("Could not move item to cart.", severity="warning")
        self.app.post_message(WishlistChangedMessage())

    @on(Button.Pressed, "#btn-remove")
    def handle_remove(self):
        self.app.state.commerce.wishlist.remove(self.item.product.id)
        self.app.post_message(WishlistChangedMessage())


class WishlistScreen(BaseScreen):
    def __init__(self) -> None:
        super().__init__(sub_title="Wishlist")

    def compose(self) -> ComposeResult:
        yield from super().compose()
        yield VerticalScroll(id="vertscroll-wishlist")

    async def on_mount(self):
        await self.refresh_state()

    async def refresh_state(self) -> None:
        await super().refresh_state()
        wishlist = self.app.state.commerce.wishlist
        content = self.query_one("#vertscroll-wishlist")
        await content.remove_children()
        if len(wishlist):
            await content.mount_all([WishlistItemWidget(item) for item in wishlist.items])
        else:
            await content.mount(Label("Your wishlist is empty."))
