import csv
import re
from io import StringIO
from typing import Iterable

from aggregator import ExportRow

EXPORT_HEADER = ["Date", "Item", "Category", "Amount"]


def sanitize_csv_value(value: str) -> str:
    """
    Sanitize CSV values to prevent formula injection by prefixing dangerous patterns with tab.
    """
    if not value or value.strip() == "":
        return ""

    value = value.strip()

    formula_triggers = ("=", "+", "-", "@", "\t", "\r")

    if value.startswith(formula_triggers):
        return "\t" + value

    dangerous_patterns = [
        r"^cmd\s*",
        r"^powershell\s*",
        r"^bash\s*",
        r"^sh\s*",
        r"^\.",
        r"^http[s]?://",
    ]

    for pattern in dangerous_patterns:
        if re.match(pattern, value, re.IGNORECASE):
            return "\t" + value

    return value


def parse_amount(value: str) -> int:
    """Whole-currency amount from user text, e.g. ``"12,000"`` or ``"₩ 3500원"``."""
    clean = (
        value.strip()
        .replace("₩", "")
        .replace("원", "")
        .replace(",", "")
        .replace(" ", "")
    )
    if not re.fullmatch(r"-?\d+", clean):
        raise ValueError("Invalid amount")
    amount = int(clean)
    if amount < 0:
        raise ValueError("Amount must be positive")
    return amount


def export_rows_csv(rows: Iterable[ExportRow]) -> str:
    output = StringIO()
    writer = csv.writer(output)
    writer.writerow(EXPORT_HEADER)
    for row in rows:
        writer.writerow(
            [
                row.date,
                sanitize_csv_value(row.item),
                row.category_label,
                str(row.amount),
            ]
        )
    return output.getvalue()
