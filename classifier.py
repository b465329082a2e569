from typing import Iterable, Mapping, Optional

from models import CLASSIFY_ORDER, DEFAULT_CATEGORY, EXCLUDE_FROM_MONTH_TOTAL, CategoryId


def matches_keyword(item: str, keywords: Iterable[str]) -> bool:
    """Case-insensitive substring match of any keyword against ``item``."""
    lower = (item or "").strip().lower()
    for keyword in keywords:
        needle = (keyword or "").strip().lower()
        if needle and needle in lower:
            return True
    return False


def classify(item: str, effective_rules: Mapping[CategoryId, list[str]]) -> CategoryId:
    """Category of ``item`` under the rules resolved for its month.

    Categories are tried in a fixed priority order (fixed costs, business,
    tax, living) and the first with a matching keyword wins. Items that match
    nothing are living costs.
    """
    for category in CLASSIFY_ORDER:
        if matches_keyword(item, effective_rules.get(category, [])):
            return category
    return DEFAULT_CATEGORY


def is_excluded_from_month_total(
    item: str, exclude_keywords: Optional[Iterable[str]] = None
) -> bool:
    if exclude_keywords is None:
        exclude_keywords = EXCLUDE_FROM_MONTH_TOTAL
    return matches_keyword(item, exclude_keywords)
