"""Reporting views over a ledger snapshot.

Everything here is a pure function of (entries, details, rules, window).
An entry with detail rows is classified through its details, one line per
detail, and whatever the details leave uncovered is booked to
``DisplayCategory.unclassified``; an entry without details is classified by
its own item text. Each entry uses the rules resolved for its own month.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import date
from typing import Iterable, Optional

from classifier import classify, is_excluded_from_month_total
from keywords import RuleSet, all_keywords
from ledger import Entry, EntryDetail, detail_total, group_details, overallocation, remainder
from models import CATEGORY_LABELS, DisplayCategory
from periods import Period, format_year_month, month_period, week_period
from seed import SEED_TABLE, SeedTable

UNCLASSIFIED_SUFFIX = " (unclassified)"
EMPTY_ITEM_LABEL = "(no item)"

ITEM_SUGGESTION_DEFAULTS: tuple[str, ...] = (
    "dog food",
    "gas station",
    "ice cream",
    "card withdrawal",
    "VAT",
    "income tax",
    "car tax",
    "license tax",
)


def base_item_name(label: str) -> str:
    """``"Dog (vet)"`` -> ``"Dog"``: everything from the first ``" ("`` goes."""
    idx = label.find(" (")
    return label[:idx] if idx >= 0 else label


@dataclass(frozen=True)
class ClassifiedLine:
    entry_id: str
    date: str
    label: str
    category: DisplayCategory
    amount: int
    is_remainder: bool = False


@dataclass(frozen=True)
class MonthTotals:
    year_month: str
    raw: int
    excluded: int

    @property
    def display(self) -> int:
        return self.raw - self.excluded


@dataclass
class ItemGroup:
    label: str
    total: int = 0
    lines: list[ClassifiedLine] = field(default_factory=list)

    @property
    def latest(self) -> str:
        return max((line.date for line in self.lines), default="")

    def add(self, line: ClassifiedLine) -> None:
        self.total += line.amount
        self.lines.append(line)


@dataclass(frozen=True)
class ExportRow:
    date: str
    item: str
    category_label: str
    amount: int

    def as_tuple(self) -> tuple[str, str, str, int]:
        return (self.date, self.item, self.category_label, self.amount)


@dataclass(frozen=True)
class Overallocation:
    entry: Entry
    detail_total: int

    @property
    def excess(self) -> int:
        return self.detail_total - self.entry.amount


class Aggregator:
    def __init__(
        self,
        entries: Iterable[Entry],
        details: Iterable[EntryDetail],
        rules: RuleSet,
        *,
        exclude_keywords: Optional[Iterable[str]] = None,
        seed: Optional[SeedTable] = SEED_TABLE,
    ) -> None:
        self.entries = list(entries)
        self.details_by_parent = group_details(details)
        self.rules = rules
        self.exclude_keywords = (
            list(exclude_keywords) if exclude_keywords is not None else None
        )
        self.seed = seed or SeedTable.empty()

    # -- windows -----------------------------------------------------------

    def in_window(self, period: Period) -> list[Entry]:
        return [e for e in self.entries if period.contains(e.date)]

    def in_windows(self, periods: Iterable[Period]) -> list[Entry]:
        windows = list(periods)
        return [e for e in self.entries if any(p.contains(e.date) for p in windows)]

    def details_of(self, entry: Entry) -> list[EntryDetail]:
        return self.details_by_parent.get(entry.id, [])

    def is_excluded(self, entry: Entry) -> bool:
        return is_excluded_from_month_total(entry.item, self.exclude_keywords)

    # -- raw totals --------------------------------------------------------

    def window_total(self, period: Period) -> int:
        return sum(e.amount for e in self.in_window(period))

    def day_totals(self, period: Period) -> dict[str, int]:
        """Raw per-day sums (no exclusion), keyed by ISO date."""
        totals: dict[str, int] = {}
        for entry in self.in_window(period):
            totals[entry.date] = totals.get(entry.date, 0) + entry.amount
        return dict(sorted(totals.items()))

    def day_total(self, day: str) -> int:
        return sum(e.amount for e in self.entries if e.date == day)

    def week_total(self, day: date) -> int:
        return self.window_total(week_period(day))

    def entries_by_day(self, period: Period) -> dict[str, list[Entry]]:
        by_day: dict[str, list[Entry]] = {}
        for entry in self.in_window(period):
            by_day.setdefault(entry.date, []).append(entry)
        for day_entries in by_day.values():
            day_entries.sort(key=lambda e: e.item)
        return dict(sorted(by_day.items()))

    def month_totals(self, year_month: str) -> MonthTotals:
        entries = self.in_window(month_period(year_month))
        raw = sum(e.amount for e in entries)
        excluded = sum(e.amount for e in entries if self.is_excluded(e))
        return MonthTotals(year_month=year_month, raw=raw, excluded=excluded)

    def month_display_total(self, year_month: str) -> int:
        return self.month_totals(year_month).display

    # -- classification ----------------------------------------------------

    def classify_entry(self, entry: Entry) -> list[ClassifiedLine]:
        rules = self.rules.for_date(entry.date)
        details = self.details_of(entry)
        if not details:
            category = DisplayCategory.of(classify(entry.item, rules))
            return [
                ClassifiedLine(
                    entry_id=entry.id,
                    date=entry.date,
                    label=entry.item.strip() or EMPTY_ITEM_LABEL,
                    category=category,
                    amount=entry.amount,
                )
            ]

        lines: list[ClassifiedLine] = []
        for detail in details:
            item = detail.item.strip()
            lines.append(
                ClassifiedLine(
                    entry_id=entry.id,
                    date=entry.date,
                    label=item or EMPTY_ITEM_LABEL,
                    category=DisplayCategory.of(classify(item, rules)),
                    amount=detail.amount,
                )
            )
        rest = remainder(entry, details)
        if rest > 0:
            lines.append(
                ClassifiedLine(
                    entry_id=entry.id,
                    date=entry.date,
                    label=f"{entry.item.strip()}{UNCLASSIFIED_SUFFIX}",
                    category=DisplayCategory.unclassified,
                    amount=rest,
                    is_remainder=True,
                )
            )
        return lines

    def classified_lines(self, period: Period) -> list[ClassifiedLine]:
        lines: list[ClassifiedLine] = []
        for entry in self.in_window(period):
            lines.extend(self.classify_entry(entry))
        return lines

    def category_totals(self, period: Period) -> dict[DisplayCategory, int]:
        totals = {cat: 0 for cat in DisplayCategory}
        for line in self.classified_lines(period):
            totals[line.category] += line.amount
        return totals

    def month_category_totals(self, year_month: str) -> dict[DisplayCategory, int]:
        return self.category_totals(month_period(year_month))

    def item_breakdown(
        self,
        category: DisplayCategory,
        period: Period,
        *,
        merge_variants: bool = False,
    ) -> list[ItemGroup]:
        """Lines of one category grouped by item label, most recent first.

        With ``merge_variants`` labels are folded to their base name so
        ``"Dog (vet)"`` and ``"Dog (food)"`` become one ``"Dog"`` group.
        """
        groups: dict[str, ItemGroup] = {}
        for line in self.classified_lines(period):
            if line.category != category:
                continue
            key = base_item_name(line.label) if merge_variants else line.label
            groups.setdefault(key, ItemGroup(label=key)).add(line)

        for group in groups.values():
            group.lines.sort(key=lambda line: line.date, reverse=True)
        return sorted(
            groups.values(), key=lambda g: (g.latest, g.label), reverse=True
        )

    # -- years -------------------------------------------------------------

    def year_by_month(self, year: int) -> dict[int, int]:
        seeded = self.seed.months_for(year)
        if seeded is not None:
            return seeded
        return {
            month: self.month_display_total(format_year_month(year, month))
            for month in range(1, 13)
        }

    def year_total(self, year: int) -> int:
        annual = self.seed.annual_for(year)
        if annual is not None:
            return annual
        return sum(self.year_by_month(year).values())

    def is_seeded(self, year: int) -> bool:
        return self.seed.months_for(year) is not None

    # -- export & anomalies ------------------------------------------------

    def export_rows(self, periods: Iterable[Period]) -> list[ExportRow]:
        """One row per detail when an entry has details, else one per entry."""
        rows: list[ExportRow] = []
        for entry in self.in_windows(periods):
            rules = self.rules.for_date(entry.date)
            details = self.details_of(entry)
            sources = [(d.item, d.amount) for d in details] or [
                (entry.item, entry.amount)
            ]
            for item, amount in sources:
                category = DisplayCategory.of(classify(item, rules))
                rows.append(
                    ExportRow(
                        date=entry.date,
                        item=item.strip(),
                        category_label=CATEGORY_LABELS[category],
                        amount=amount,
                    )
                )
        rows.sort(key=lambda r: (r.date, r.item))
        return rows

    def overallocated(self, period: Period) -> list[Overallocation]:
        found: list[Overallocation] = []
        for entry in self.in_window(period):
            details = self.details_of(entry)
            if details and overallocation(entry, details) > 0:
                found.append(Overallocation(entry=entry, detail_total=detail_total(details)))
        return found

    # -- input helpers -----------------------------------------------------

    def item_suggestions(
        self,
        query: str,
        year_month: str,
        *,
        limit: int = 12,
        defaults: Iterable[str] = ITEM_SUGGESTION_DEFAULTS,
    ) -> list[str]:
        counts = Counter(e.item.strip() for e in self.entries if e.item.strip())
        frequent = [
            item
            for item, n in sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))
            if n >= 2
        ][:30]
        keywords = [w.strip() for w in all_keywords(self.rules, year_month)]
        candidates = sorted({c for c in [*defaults, *keywords, *frequent] if c})

        q = (query or "").strip().lower()
        if q:
            candidates = [c for c in candidates if q in c.lower()]
        return candidates[:limit]
