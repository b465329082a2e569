from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Iterable, Optional
from zoneinfo import ZoneInfo

from rapidfuzz.distance import Levenshtein
from sqlalchemy.orm import Session

from aggregator import Aggregator, ItemGroup
from config import get_settings
from csv_utils import export_rows_csv
from keywords import (
    CategoryKeywordView,
    KeywordMap,
    RuleSet,
    add_keyword,
    remove_keyword,
)
from ledger import (
    Entry,
    EntryDetail,
    EntryStore,
    new_provisional_id,
    overallocation,
    search_entries,
)
from models import CATEGORY_LABELS, CATEGORY_ORDER, CategoryId, DisplayCategory
from periods import (
    Period,
    month_period,
    selected_months_periods,
    week_period,
    year_period,
)
from repository import BudgetRepository, PersistenceError
from schemas import CardExpenseIn, EntryDetailIn, EntryIn, EntryPatch, ExportQuery
from seed import SEED_TABLE, SeedTable

logger = logging.getLogger(__name__)


def today_local() -> date:
    return datetime.now(ZoneInfo(get_settings().timezone)).date()


def current_year_month() -> str:
    return today_local().isoformat()[:7]


class CategoryNotFound(ValueError):
    pass


class CategoryAmbiguous(ValueError):
    pass


def _category_names(category: CategoryId) -> set[str]:
    return {
        category.value.lower(),
        category.name.lower(),
        category.name.replace("_", " "),
        CATEGORY_LABELS[DisplayCategory.of(category)].lower(),
    }


def resolve_category_name(raw: str) -> CategoryId:
    """Map user text to a keyword category, tolerating a one-letter typo."""
    name = (raw or "").strip()
    input_lower = name.lower()
    if not input_lower:
        raise CategoryNotFound("Category is required")

    for category in CATEGORY_ORDER:
        if input_lower in _category_names(category):
            return category

    best_distance: Optional[int] = None
    best: list[CategoryId] = []
    for category in CATEGORY_ORDER:
        dist = min(
            int(Levenshtein.distance(input_lower, candidate))
            for candidate in _category_names(category)
        )
        if best_distance is None or dist < best_distance:
            best_distance = dist
            best = [category]
        elif dist == best_distance:
            best.append(category)

    if best_distance is not None and best_distance <= 1:
        if len(best) > 1:
            options = ", ".join(sorted(c.value for c in best))
            raise CategoryAmbiguous(
                f"Category '{name}' is ambiguous; matches: {options}"
            )
        return best[0]
    raise CategoryNotFound(f"Category '{name}' not found")


class EntryService:
    def __init__(
        self, session: Session, repository: Optional[BudgetRepository] = None
    ) -> None:
        self.session = session
        self.repository = repository or BudgetRepository(session)
        self.store = EntryStore()
        self.reload()

    def reload(self) -> None:
        # The id remap survives a reload so late detail inserts still resolve.
        self.store.replace_all(self.repository.load_entries())
        self.store.replace_details(self.repository.load_entry_details())

    def list_entries(self, query: Optional[str] = None) -> list[Entry]:
        return self.store.search(query)

    def get(self, entry_id: str) -> Entry:
        return self.store.get(entry_id)

    def details_for(self, entry_id: str) -> list[EntryDetail]:
        return self.store.details_for(entry_id)

    def add_entry(self, data: EntryIn) -> Optional[Entry]:
        provisional_id = self._insert_entry(data.date, data.item, data.amount)
        if provisional_id is None:
            return None
        return self.store.get(provisional_id)

    def add_card_expense(
        self, data: CardExpenseIn
    ) -> Optional[tuple[Entry, list[EntryDetail]]]:
        """Create a lump entry and its sub-items in one go.

        The details are attached through the provisional id the entry had
        before it was saved, which the store resolves to the server id.
        """
        provisional_id = self._insert_entry(data.date, data.item, data.amount)
        if provisional_id is None:
            return None
        details = self.add_details(provisional_id, data.details)
        return self.store.get(provisional_id), details

    def update_entry(self, entry_id: str, data: EntryPatch) -> Optional[Entry]:
        patch: dict[str, object] = {}
        if data.item is not None:
            item = data.item.strip()
            if not item:
                logger.debug(f"entry_update_ignored: entry_id={entry_id} reason=blank_item")
                return None
            patch["item"] = item
        if data.amount is not None:
            if data.amount <= 0:
                logger.debug(f"entry_update_ignored: entry_id={entry_id} reason=amount")
                return None
            patch["amount"] = data.amount
        if data.date is not None:
            patch["date"] = data.date.isoformat()
        if not patch:
            return self.store.get(entry_id)

        self.store.update_entry(entry_id, patch)
        self._save_entries()
        return self.store.get(entry_id)

    def remove_entry(self, entry_id: str) -> None:
        entry = self.store.remove_entry(entry_id)
        self._save_entries()
        logger.info(f"entry_removed: entry_id={entry.id}")

    def add_details(
        self, parent_id: str, rows: Iterable[EntryDetailIn]
    ) -> list[EntryDetail]:
        parent = self.store.get(parent_id)
        fresh = self._detail_rows(parent.id, rows)
        if not fresh:
            return self.store.details_for(parent.id)
        self.store.insert_detail_rows(fresh)
        self._save_details()
        return self._checked_details(parent.id)

    def replace_details(
        self, parent_id: str, rows: Iterable[EntryDetailIn]
    ) -> list[EntryDetail]:
        parent = self.store.get(parent_id)
        self.store.replace_details_for(parent.id, self._detail_rows(parent.id, rows))
        self._save_details()
        return self._checked_details(parent.id)

    def remove_detail(self, detail_id: str) -> None:
        self.store.remove_detail(detail_id)
        self._save_details()

    def _insert_entry(self, when: date, item_raw: str, amount: int) -> Optional[str]:
        item = (item_raw or "").strip()
        if not item or amount <= 0:
            logger.debug("entry_ignored: reason=blank_item_or_amount")
            return None
        entry = Entry(
            id=new_provisional_id(), date=when.isoformat(), item=item, amount=amount
        )
        self.store.insert(entry)
        self._save_entries()
        return entry.id

    @staticmethod
    def _detail_rows(parent_id: str, rows: Iterable[EntryDetailIn]) -> list[EntryDetail]:
        out: list[EntryDetail] = []
        for row in rows:
            item = row.item.strip()
            if not item or row.amount <= 0:
                continue
            out.append(
                EntryDetail(
                    id=new_provisional_id(),
                    parent_id=parent_id,
                    item=item,
                    amount=row.amount,
                )
            )
        return out

    def _checked_details(self, parent_id: str) -> list[EntryDetail]:
        details = self.store.details_for(parent_id)
        excess = overallocation(self.store.get(parent_id), details)
        if excess:
            logger.info(f"details_overallocated: entry_id={parent_id} excess={excess}")
        return details

    def _save_entries(self) -> None:
        try:
            saved = self.repository.save_entries(self.store.entries)
        except PersistenceError:
            logger.exception("entries_save_failed: reloading stored state")
            self.reload()
            raise
        self.store.reconcile_entries(saved)

    def _save_details(self) -> None:
        try:
            saved = self.repository.save_entry_details(self.store.details)
        except PersistenceError:
            logger.exception("details_save_failed: reloading stored state")
            self.reload()
            raise
        self.store.replace_details(saved)


class KeywordService:
    def __init__(
        self, session: Session, repository: Optional[BudgetRepository] = None
    ) -> None:
        self.session = session
        self.repository = repository or BudgetRepository(session)
        self.rules = self.repository.load_rules()

    def reload(self) -> None:
        self.rules = self.repository.load_rules()

    def rules_for_month(self, year_month: Optional[str] = None) -> KeywordMap:
        return self.rules.for_month(year_month or current_year_month())

    def category_view(
        self, category: CategoryId, year_month: Optional[str] = None
    ) -> CategoryKeywordView:
        return self.rules.category_view(category, year_month or current_year_month())

    def add_keyword(
        self,
        category: CategoryId,
        word: str,
        persist_globally: bool,
        year_month: Optional[str] = None,
    ) -> RuleSet:
        ym = year_month or current_year_month()
        updated = add_keyword(self.rules, category, word, persist_globally, ym)
        if updated is self.rules:
            logger.debug(f"keyword_add_ignored: category={category.value}")
            return self.rules
        self._persist(updated, base_changed=persist_globally)
        logger.info(
            f"keyword_added: category={category.value} word={word.strip()!r} "
            f"scope={'global' if persist_globally else ym}"
        )
        return self.rules

    def remove_keyword(
        self,
        category: CategoryId,
        word: str,
        is_month_only: bool,
        year_month: Optional[str] = None,
    ) -> RuleSet:
        ym = year_month or current_year_month()
        updated = remove_keyword(self.rules, category, word, is_month_only, ym)
        if updated is self.rules:
            return self.rules
        self._persist(updated, base_changed=not is_month_only)
        logger.info(
            f"keyword_removed: category={category.value} word={word!r} "
            f"scope={ym if is_month_only else 'global'}"
        )
        return self.rules

    def _persist(self, updated: RuleSet, *, base_changed: bool) -> None:
        self.rules = updated
        try:
            if base_changed:
                self.repository.save_keywords(updated.base)
            else:
                self.repository.save_month_extras(updated.month_extras)
        except PersistenceError:
            logger.exception("keywords_save_failed: reloading stored rules")
            self.reload()
            raise


class ReportService:
    def __init__(
        self,
        session: Session,
        repository: Optional[BudgetRepository] = None,
        seed: Optional[SeedTable] = SEED_TABLE,
    ) -> None:
        self.session = session
        self.repository = repository or BudgetRepository(session)
        self.seed = seed

    def aggregator(self, query: Optional[str] = None) -> Aggregator:
        entries = search_entries(self.repository.load_entries(), query)
        return Aggregator(
            entries,
            self.repository.load_entry_details(),
            self.repository.load_rules(),
            exclude_keywords=get_settings().exclude_keywords,
            seed=self.seed,
        )

    @staticmethod
    def _category_rows(totals: dict[DisplayCategory, int]) -> list[dict[str, object]]:
        grand = sum(totals.values())
        rows: list[dict[str, object]] = []
        for category, amount in totals.items():
            if amount == 0:
                continue
            rows.append(
                {
                    "category": category.value,
                    "label": CATEGORY_LABELS[category],
                    "amount": amount,
                    "percent": (amount / grand * 100) if grand else 0,
                }
            )
        rows.sort(key=lambda r: int(r["amount"]), reverse=True)
        return rows

    @staticmethod
    def _group_payload(group: ItemGroup) -> dict[str, object]:
        return {
            "item": group.label,
            "total": group.total,
            "entries": [
                {"entry_id": line.entry_id, "date": line.date, "amount": line.amount}
                for line in group.lines
            ],
        }

    def month_summary(
        self, year_month: str, query: Optional[str] = None
    ) -> dict[str, object]:
        agg = self.aggregator(query)
        period = month_period(year_month)
        totals = agg.month_totals(year_month)
        anomalies = agg.overallocated(period)
        if anomalies:
            logger.info(
                f"details_overallocated: month={year_month} entries={len(anomalies)}"
            )
        return {
            "year_month": year_month,
            "total_raw": totals.raw,
            "total_excluded": totals.excluded,
            "total_display": totals.display,
            "by_category": self._category_rows(agg.category_totals(period)),
            "by_day": agg.day_totals(period),
            "overallocated": [
                {
                    "entry_id": a.entry.id,
                    "item": a.entry.item,
                    "amount": a.entry.amount,
                    "detail_total": a.detail_total,
                    "excess": a.excess,
                }
                for a in anomalies
            ],
        }

    def category_breakdown(
        self, period: Period, query: Optional[str] = None
    ) -> list[dict[str, object]]:
        return self._category_rows(self.aggregator(query).category_totals(period))

    def item_breakdown(
        self,
        category: DisplayCategory,
        period: Period,
        *,
        merge_variants: bool = False,
        query: Optional[str] = None,
    ) -> list[dict[str, object]]:
        groups = self.aggregator(query).item_breakdown(
            category, period, merge_variants=merge_variants
        )
        return [self._group_payload(g) for g in groups]

    def day_entries(
        self, period: Period, query: Optional[str] = None
    ) -> dict[str, list[dict[str, object]]]:
        by_day = self.aggregator(query).entries_by_day(period)
        return {
            day: [{"id": e.id, "item": e.item, "amount": e.amount} for e in entries]
            for day, entries in by_day.items()
        }

    def week_summary(self, day: Optional[date] = None) -> dict[str, object]:
        target = day or today_local()
        period = week_period(target)
        return {
            "start": period.start_key,
            "end": period.end_key,
            "total": self.aggregator().window_total(period),
        }

    def year_overview(self, year: int) -> dict[str, object]:
        agg = self.aggregator()
        return {
            "year": year,
            "seeded": agg.is_seeded(year),
            "by_month": agg.year_by_month(year),
            "total": agg.year_total(year),
        }

    def suggestions(self, query: str, year_month: Optional[str] = None) -> list[str]:
        return self.aggregator().item_suggestions(
            query, year_month or current_year_month()
        )

    def export_periods(self, data: ExportQuery) -> list[Period]:
        if data.month is not None:
            return selected_months_periods(data.year, [data.month])
        months = [m for m in data.months if 1 <= m <= 12]
        if months:
            return selected_months_periods(data.year, months)
        return [year_period(data.year)]

    def export_csv(self, data: ExportQuery) -> str:
        rows = self.aggregator().export_rows(self.export_periods(data))
        logger.info(f"export_built: year={data.year} rows={len(rows)}")
        return export_rows_csv(rows)
