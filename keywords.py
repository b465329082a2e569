"""Category keyword rules.

A rule set is the persisted base mapping (category -> keywords, each word in
at most one category) plus month-scoped extras that only add keywords for a
single ``YYYY-MM``. Every mutation returns a new ``RuleSet``; callers persist
the full replacement.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping, Optional

from models import CATEGORY_ORDER, DEFAULT_KEYWORDS, CategoryId

KeywordMap = dict[CategoryId, list[str]]
MonthExtras = dict[str, dict[CategoryId, list[str]]]


def to_year_month(date_str: str) -> str:
    return date_str[:7]


def empty_keyword_map() -> KeywordMap:
    return {cat: [] for cat in CATEGORY_ORDER}


def default_keywords() -> KeywordMap:
    return {cat: list(DEFAULT_KEYWORDS.get(cat, [])) for cat in CATEGORY_ORDER}


def normalize_keywords(raw: Mapping[CategoryId, list[str]]) -> KeywordMap:
    """Clean up a loaded base mapping.

    Missing categories become empty lists and blank words are dropped. A
    word listed under several categories survives only in the last one in
    declaration order.
    """
    out = empty_keyword_map()
    for cat in CATEGORY_ORDER:
        for word in raw.get(cat, []) or []:
            clean = str(word).strip()
            if clean and clean not in out[cat]:
                out[cat].append(clean)

    owner: dict[str, CategoryId] = {}
    for cat in CATEGORY_ORDER:
        for word in out[cat]:
            owner[word] = cat
    for cat in CATEGORY_ORDER:
        out[cat] = [w for w in out[cat] if owner[w] == cat]
    return out


def resolve_for_month(
    base: Mapping[CategoryId, list[str]],
    month_extras: Mapping[str, Mapping[CategoryId, list[str]]],
    year_month: str,
) -> KeywordMap:
    """Effective keywords for ``year_month``: base ++ that month's extras.

    No dedup; a word present in both lists just matches twice.
    """
    extra = month_extras.get(year_month) or {}
    result = empty_keyword_map()
    for cat in CATEGORY_ORDER:
        result[cat] = list(base.get(cat, []))
        result[cat].extend(extra.get(cat, []) or [])
    return result


@dataclass(frozen=True)
class CategoryKeywordView:
    base: list[str]
    extra: list[str]

    @property
    def all(self) -> list[str]:
        return [*self.base, *self.extra]


@dataclass(frozen=True)
class RuleSet:
    base: KeywordMap = field(default_factory=empty_keyword_map)
    month_extras: MonthExtras = field(default_factory=dict)
    _resolved: dict[str, KeywordMap] = field(
        default_factory=dict, compare=False, repr=False
    )

    def for_month(self, year_month: str) -> KeywordMap:
        cached = self._resolved.get(year_month)
        if cached is None:
            cached = resolve_for_month(self.base, self.month_extras, year_month)
            self._resolved[year_month] = cached
        # callers get their own lists; the cache stays untouched
        return {cat: list(words) for cat, words in cached.items()}

    def for_date(self, date_str: str) -> KeywordMap:
        return self.for_month(to_year_month(date_str))

    def category_view(self, category: CategoryId, year_month: str) -> CategoryKeywordView:
        extra = (self.month_extras.get(year_month) or {}).get(category, [])
        return CategoryKeywordView(
            base=list(self.base.get(category, [])), extra=list(extra)
        )

    def contains(self, category: CategoryId, word: str, year_month: str) -> bool:
        view = self.category_view(category, year_month)
        needle = word.casefold()
        return any(w.casefold() == needle for w in view.all)


def _copy_base(base: Mapping[CategoryId, list[str]]) -> KeywordMap:
    out = empty_keyword_map()
    for cat in CATEGORY_ORDER:
        out[cat] = list(base.get(cat, []))
    return out


def _copy_extras(extras: Mapping[str, Mapping[CategoryId, list[str]]]) -> MonthExtras:
    return {
        ym: {cat: list(words) for cat, words in by_cat.items()}
        for ym, by_cat in extras.items()
    }


def add_keyword(
    rules: RuleSet,
    category: CategoryId,
    word: str,
    persist_globally: bool,
    year_month: str,
) -> RuleSet:
    """Add ``word`` to ``category``.

    Globally: the word moves into ``category`` and leaves every other base
    category. Month-only: appended to the ``year_month`` extras for
    ``category``. Blank words and words already present (in base or in this
    month's extras for the category) leave the rules unchanged.
    """
    clean = (word or "").strip()
    if not clean or rules.contains(category, clean, year_month):
        return rules

    if persist_globally:
        base = _copy_base(rules.base)
        for cat in CATEGORY_ORDER:
            if cat != category:
                base[cat] = [w for w in base[cat] if w.casefold() != clean.casefold()]
        base[category].append(clean)
        return RuleSet(base=base, month_extras=_copy_extras(rules.month_extras))

    extras = _copy_extras(rules.month_extras)
    month = extras.setdefault(year_month, {})
    month.setdefault(category, []).append(clean)
    return RuleSet(base=_copy_base(rules.base), month_extras=extras)


def remove_keyword(
    rules: RuleSet,
    category: CategoryId,
    word: str,
    is_month_only: bool,
    year_month: str,
) -> RuleSet:
    if is_month_only:
        extras = _copy_extras(rules.month_extras)
        month = extras.get(year_month)
        if not month or category not in month:
            return rules
        remaining = [w for w in month[category] if w != word]
        if remaining:
            month[category] = remaining
        else:
            del month[category]
            if not month:
                del extras[year_month]
        return RuleSet(base=_copy_base(rules.base), month_extras=extras)

    if word not in rules.base.get(category, []):
        return rules
    base = _copy_base(rules.base)
    base[category] = [w for w in base[category] if w != word]
    return RuleSet(base=base, month_extras=_copy_extras(rules.month_extras))


def all_keywords(rules: RuleSet, year_month: Optional[str] = None) -> list[str]:
    keywords = rules.for_month(year_month) if year_month else rules.base
    seen: list[str] = []
    for cat in CATEGORY_ORDER:
        for word in keywords.get(cat, []):
            if word not in seen:
                seen.append(word)
    return seen
