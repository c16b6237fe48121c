from textual import events, on
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.reactive import reactive
from textual.screen import ModalScreen
from textual.widgets import Button, Input, Label, MarkdownViewer

from db.models import Product
from utils.messages import CartChangedMessage, WishlistChangedMessage
from utils.pure import format_money, generate_markdown_table


class ProdDetailModal(ModalScreen[bool]):
    """
    prod detail, plus add to cart / wishlist
    Will return true if cart changed, false if not
    """

    DEFAULT_CSS = """
    #input-order-qty { width: 10; }
    #btn-sub-qty { min-width: 4; }
    #btn-add-qty { min-width: 4; }
    """

    order_qty = reactive(1)

    def __init__(self, product: Product) -> None:
        super().__init__()
        self._prod = product

    def compose(self) -> ComposeResult:
        with Horizontal(id="hort-prod-detail"):
            yield MarkdownViewer("", show_table_of_contents=False)
            with Vertical():
                yield Label("Order Quantity")
                with Horizontal():
                    yield Button("-", id="btn-sub-qty")
                    yield Input(value="1", id="input-order-qty", type="integer")
                    yield Button("+", id="btn-add-qty")
                with Horizontal():
                    yield Button("Go Back", id="btn-quit")
                    yield Button("Wishlist", id="btn-wishlist")
                    yield Button("Add to Cart", id="btn-addcart", variant="primary")

    async def on_mount(self):
        p = self._prod
        rows = [
            ["Brand", p.brand or "-"],
            ["Category", p.category],
            ["Price", format_money(p.price)],
            ["Discount", f"{p.discount_percentage:g}%"],
            ["You pay", format_money(p.discounted_price)],
            ["Rating", f"{p.rating:.1f}"],
            ["In stock", p.stock],
        ]
        md = f"### {p.title}\n\n{p.description}\n\n"
        md += generate_markdown_table(["Attribute", "Value"], rows, ["l", "l"])
        await self.query_one(MarkdownViewer).document.update(md)

        if p.stock < 1:
            order_btn = self.query_one("#btn-addcart", Button)
            order_btn.label = "Out of Stock"
            order_btn.disabled = True
            order_btn.variant = "warning"

        in_cart = self.app.state.commerce.cart.get(p.id)
        if in_cart:
            self.query_one("#btn-addcart", Button).label = f"Add more ({in_cart.quantity} in cart)"
        self._update_wishlist_label()
        self.watch_order_qty(self.order_qty)
        self.query_one("#input-order-qty").focus()

    def _update_wishlist_label(self) -> None:
        wishlisted = self.app.state.commerce.wishlist.contains(self._prod.id)
        self.query_one("#btn-wishlist", Button).label = (
            "Remove from Wishlist" if wishlisted else "Add to Wishlist"
        )

    def validate_order_qty(self, qty: int) -> int:
        return max(1, min(qty, max(self._prod.stock, 1)))

    def watch_order_qty(self, qty: int):
        if not self.is_mounted:
            return
        self.query_one("#btn-sub-qty").disabled = qty <= 1
        self.query_one("#btn-add-qty").disabled = qty >= self._prod.stock
        self.query_one("#input-order-qty", Input).value = str(qty)

    def on_key(self, event: events.Key) -> None:
        if event.key == "escape":
            self.dismiss(False)

    async def on_input_changed(self, message: Input.Changed) -> None:
        if message.input.id == "input-order-qty" and message.value.isdigit():
            self.order_qty = int(message.value)

    @on(Button.Pressed, "#btn-add-qty")
    def handle_add_qty(self):
        self.order_qty += 1

    @on(Button.Pressed, "#btn-sub-qty")
    def handle_sub_qty(self):
        self.order_qty -= 1

    @on(Button.Pressed, "#btn-quit")
    def handle_quit(self):
        self.dismiss(False)

    @on(Button.Pressed, "#btn-wishlist")
    def handle_wishlist(self):
        if self.app.state.commerce.wishlist.toggle(self._prod):
            self.notify("Added to wishlist.")
        else:
            self.notify("Removed from wishlist.")
        self._update_wishlist_label()
        self.app.post_message(WishlistChangedMessage())

    @on(Button.Pressed, "#btn-addcart")
    def handle_addcart(self):
        item = self.app.state.commerce.cart.add(self._prod, self.order_qty)
        if item is None:
            self.notify("This product is out of stock.", severity="warning")
            self.dismiss(False)
            return
        self.notify(f"{item.quantity} x {self._prod.title} in cart.")
        self.app.post_message(CartChangedMessage())
        self.dismiss(True)
