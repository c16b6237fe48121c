from textual import events, on, work
from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal
from textual.widgets import DataTable, Input, Label, Select

from clients.catalog import CATEGORY_MAP
from db.models import CatalogPage, Product
from services.pricing import available_brands, browse
from utils.errors import NetworkUnavailable
from utils.pure import format_money
from views.base_screen import BaseScreen
from views.modal_prod_detail import ProdDetailModal

SORT_OPTIONS = [
    ("Featured", "default"),
    ("Price: low to high", "price-low"),
    ("Price: high to low", "price-high"),
    ("Top rated", "rating"),
    ("Name", "name"),
]

PRICE_CAPS = [50, 100, 250, 500, 1000, 2500]


class ProdSearchScreen(BaseScreen):
    """
    catalog browsing: free-text search and category fetch from the catalog,
    price cap, brand and sort only re-filter what was fetched
    """

    DEFAULT_CSS = """
    #hort-filters { height: auto; }
    #select-category { width: 24; }
    #select-price { width: 20; }
    #select-brand { width: 26; }
    #select-sort { width: 28; }
    """

    # only here to be displayed in footer
    BINDINGS = [
        Binding("enter", "noop", "View Product", show=True, key_display="⏎"),
    ]

    def __init__(self):
        super().__init__(sub_title="Products")
        self._page = CatalogPage()
        self._products: list[Product] = []

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Horizontal(id="hort-filters"):
            yield Input(id="input-search", placeholder="Search products...")
            yield Select(
                [(name.title(), name) for name in CATEGORY_MAP],
                prompt="All categories",
                id="select-category",
            )
            yield Select(
                [(f"Up to {format_money(cap)}", cap) for cap in PRICE_CAPS],
                prompt="Any price",
                id="select-price",
            )
            yield Select([], prompt="All brands", id="select-brand")
            yield Select(SORT_OPTIONS, value="default", allow_blank=False, id="select-sort")
        yield DataTable(id="table-search-result")
        yield Label("", id="label-result-cnt")

    def on_mount(self):
        table = self.query_one(DataTable)
        table.cursor_type = "row"
        table.zebra_stripes = True
        table.add_columns("ID", "Title", "Brand", "Price", "Discount", "Rating", "Stock")
        self.query_one("#input-search").focus()
        self.load_products()

    def action_noop(self) -> None:
        pass

    async def on_input_changed(self, message: Input.Changed) -> None:
        if message.input.id == "input-search":
            self.load_products()

    @on(Select.Changed, "#select-category")
    def handle_category(self) -> None:
        self.load_products()

    @on(Select.Changed, "#select-price")
    @on(Select.Changed, "#select-brand")
    @on(Select.Changed, "#select-sort")
    def handle_refine(self) -> None:
        self.show_products()

    async def on_key(self, event: events.Key) -> None:
        table = self.query_one(DataTable)
        if event.key == "enter" and self.focused == table and table.row_count:
            pid = int(table.get_row_at(table.cursor_row)[0])
            product = next((p for p in self._products if p.id == pid), None)
            if product is not None:
                self.app.push_screen(ProdDetailModal(product))

    @staticmethod
    def _selected(select: Select):
        return None if select.value in (None, Select.BLANK) else select.value

    @work(exclusive=True)
    async def load_products(self) -> None:
        catalog = self.app.state.catalog
        query = self.query_one("#input-search", Input).value.strip()
        category = self._selected(self.query_one("#select-category", Select))

        try:
            if query:
                page = await catalog.search(query)
            elif category is not None:
                page = await catalog.products_by_category(category)
            else:
                page = await catalog.list_products(30)
        except NetworkUnavailable as e:
            self.notify(e.message, severity="error")
            return

        self._page = page
        # brand choices follow what was fetched; a stale pick would hide everything
        self.query_one("#select-brand", Select).set_options(
            [(brand, brand) for brand in available_brands(page.products)]
        )
        self.show_products()

    def show_products(self) -> None:
        self._products = browse(
            self._page.products,
            max_price=self._selected(self.query_one("#select-price", Select)),
            brand=self._selected(self.query_one("#select-brand", Select)),
            sort_by=self.query_one("#select-sort", Select).value,
        )

        table = self.query_one(DataTable)
        table.clear()
        table.add_rows(
            [
                (
                    str(p.id),
                    p.title,
                    p.brand,
                    format_money(p.discounted_price),
                    f"{round(p.discount_percentage)}%" if p.discount_percentage else "",
                    f"{p.rating:.1f}",
                    str(p.stock),
                )
                for p in self._products
            ]
        )
        self.query_one("#label-result-cnt", Label).update(
            f"Showing {len(self._products)} of {self._page.total}"
        )
