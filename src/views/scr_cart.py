from textual import on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, HorizontalGroup, VerticalScroll
from textual.widgets import Button, Label, Markdown, Rule

from db.models import CartItem
from utils.messages import CartChangedMessage
from utils.pure import format_money, summary_markdown
from views.base_screen import BaseScreen
from views.modal_dialog import DialogModal, confirm


class CartItemWidget(HorizontalGroup):
    DEFAULT_CSS = """
    CartItemWidget { height: auto; padding: 0 1; }
    CartItemWidget Label { padding: 1 1; }
    CartItemWidget .name { width: 1fr; }
    CartItemWidget Button { min-width: 5; }
    """

    def __init__(self, item: CartItem):
        super().__init__()
        self.item = item

    def compose(self):
        product = self.item.product
        yield Label(product.title, classes="name")
        yield Label(format_money(product.discounted_price), classes="price")
        yield Button("-", id="btn-item-dec")
        yield Label(str(self.item.quantity), classes="qty")
        yield Button("+", id="btn-item-inc", disabled=self.item.quantity >= product.stock)
        yield Label(format_money(self.item.line_total), classes="line-total")
        yield Button("Remove", id="btn-item-remove", variant="error")

    @on(Button.Pressed, "#btn-item-inc")
    def handle_inc(self):
        self.app.state.commerce.cart.increment(self.item.product.id)
        self.app.post_message(CartChangedMessage())

    @on(Button.Pressed, "#btn-item-dec")
    def handle_dec(self):
        # dropping below 1 removes the line
        self.app.state.commerce.cart.decrement(self.item.product.id)
        self.app.post_message(CartChangedMessage())

    @on(Button.Pressed, "#btn-item-remove")
    @work()
    async def handle_remove_item(self):
        if await self.app.push_screen_wait(
            confirm("Do you really want to remove this item from cart?")
        ):
            self.app.state.commerce.cart.remove(self.item.product.id)
            self.app.post_message(CartChangedMessage())
            self.notify("Item removed from cart.", severity="information")


class CartScreen(BaseScreen):
    """
    cart lines and the order summary; totals come from CommerceState, never computed here
    """

    DEFAULT_CSS = """
    #vertscroll-content { height: 1fr; }
    #md-summary { height: auto; width: 50; }
    #hort-buttons { height: auto; }
    """

    def __init__(self) -> None:
        super().__init__(sub_title="Cart")

    def compose(self) -> ComposeResult:
        yield from super().compose()
        yield VerticalScroll(id="vertscroll-content")
        yield Markdown("", id="md-summary")
        yield Rule(line_style="dashed")
        with Horizontal(id="hort-buttons"):
            yield Button("Clear Cart", id="btn-clear-cart")
            yield Button("Pay Now", id="btn-checkout", variant="primary")

    async def on_mount(self):
        await self.refresh_state()

    async def refresh_state(self) -> None:
        await super().refresh_state()
        commerce = self.app.state.commerce

        content = self.query_one("#vertscroll-content")
        await content.remove_children()
        if len(commerce.cart):
            await content.mount_all([CartItemWidget(item) for item in commerce.cart.items])
        else:
            await content.mount(Label("Your cart is empty."))

        await self.query_one("#md-summary", Markdown).update(
            summary_markdown(commerce.summary())
        )

    @on(Button.Pressed, "#btn-clear-cart")
    @work()
    async def handle_clear_cart(self) -> None:
        if not len(self.app.state.commerce.cart):
            self.app.notify("Cart is empty.", severity="warning")
            return
        if await self.app.push_screen_wait(
            confirm("Do you really want to remove all items from cart?", tone="error")
        ):
            self.app.state.commerce.cart.clear()
            self.app.post_message(CartChangedMessage())

    @on(Button.Pressed, "#btn-checkout")
    @work()
    async def handle_checkout(self) -> None:
        """Payment is not implemented; the cart is left as is."""
        summary = self.app.state.commerce.summary()
        if not summary.item_count:
            self.app.notify("Cart is empty.", severity="warning")
            return
        await self.app.push_screen_wait(
            DialogModal(f"Payment is not available yet. Order total: {format_money(summary.total)}")
        )
