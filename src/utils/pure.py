from typing import List, Literal, Optional

from db.models import OrderSummary


def format_money(amount: float) -> str:
    return f"${amount:,.2f}"


def generate_markdown_table(
    headers: Optional[List[str]],
    rows: List[List[str]],
    aligns: Optional[List[Literal["l", "c", "r"]]] = None,
) -> str:
    """
    Generate a Markdown table.

    Args:
        headers: List of column headers, or None to use first row as headers.
        rows: List of rows, each a list of cells (converted with str()).
        aligns: List of alignments ('l', 'c', 'r') for each column.
                Defaults to all center ('c').

    Returns:
        str: Markdown formatted table, or "" when there are no rows.
    """
    if not rows:
        return ""

    if not headers:
        headers, rows = rows[0], rows[1:]

    headers = [str(h) for h in headers]
    rows = [[str(cell).replace("|", "\\|") for cell in row] for row in rows]

    if aligns is None:
        aligns = ["c"] * len(headers)
    elif len(aligns) != len(headers):
        raise ValueError("Length of aligns must match number of headers.")

    align_map = {"l": ":---", "c": ":---:", "r": "---:"}

    lines = [
        "| " + " | ".join(headers) + " |",
        "| " + " | ".join(align_map[a] for a in aligns) + " |",
    ]
    lines.extend("| " + " | ".join(row) + " |" for row in rows)
    return "\n".join(lines)


def summary_markdown(summary: OrderSummary) -> str:
    """Two-column order summary table for the cart screen."""
    rows = [
        ["Items", summary.item_count],
        ["Subtotal", format_money(summary.subtotal)],
        ["Shipping", "Free" if summary.shipping == 0 else format_money(summary.shipping)],
        ["Tax", format_money(summary.tax)],
        ["**Total**", f"**{format_money(summary.total)}**"],
    ]
    return generate_markdown_table(["", "Amount"], rows, ["l", "r"])
