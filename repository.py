from __future__ import annotations

import logging
from typing import Callable, Iterable, Mapping, TypeVar
from uuid import uuid4

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from keywords import KeywordMap, MonthExtras, RuleSet, default_keywords, normalize_keywords
from ledger import Entry, EntryDetail, is_provisional
from models import (
    CATEGORY_ORDER,
    BudgetEntry,
    BudgetEntryDetail,
    BudgetKeyword,
    BudgetMeta,
    CategoryId,
    MonthExtraKeyword,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

KEYWORDS_SEEDED_KEY = "keywords_seeded"


class PersistenceError(RuntimeError):
    pass


def _server_id() -> str:
    return str(uuid4())


def _to_entry(row: BudgetEntry) -> Entry:
    return Entry(id=row.id, date=row.date, item=row.item, amount=int(row.amount))


def _to_detail(row: BudgetEntryDetail) -> EntryDetail:
    return EntryDetail(
        id=row.id, parent_id=row.parent_id, item=row.item, amount=int(row.amount)
    )


class BudgetRepository:
    """Load / replace-all persistence for entries, details and keyword rules.

    Every ``save_*`` takes the complete list and makes the database match
    it; new rows (provisional ``tmp-`` ids) get server ids, and the returned
    list is the authoritative state.
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    def _write(self, action: str, fn: Callable[[], T]) -> T:
        try:
            result = fn()
            self.session.commit()
            return result
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.error(f"persistence_failed: action={action} error={exc}")
            raise PersistenceError(f"Could not {action}") from exc

    # -- entries -----------------------------------------------------------

    def load_entries(self) -> list[Entry]:
        rows = self.session.scalars(
            select(BudgetEntry).order_by(BudgetEntry.date.desc(), BudgetEntry.id)
        ).all()
        return [_to_entry(row) for row in rows]

    def save_entries(self, entries: Iterable[Entry]) -> list[Entry]:
        wanted = list(entries)
        return self._write("save entries", lambda: self._save_entries(wanted))

    def _save_entries(self, entries: list[Entry]) -> list[Entry]:
        keep_ids = {e.id for e in entries if not is_provisional(e.id)}
        existing = {row.id: row for row in self.session.scalars(select(BudgetEntry))}
        for row_id, row in existing.items():
            if row_id not in keep_ids:
                self.session.delete(row)

        out: list[Entry] = []
        for entry in entries:
            row = None if is_provisional(entry.id) else existing.get(entry.id)
            if row is None:
                row = BudgetEntry(id=_server_id() if is_provisional(entry.id) else entry.id)
                self.session.add(row)
            row.date = entry.date
            row.item = entry.item
            row.amount = entry.amount
            out.append(Entry(id=row.id, date=entry.date, item=entry.item, amount=entry.amount))
        self.session.flush()
        out.sort(key=lambda e: e.date, reverse=True)
        return out

    # -- details -----------------------------------------------------------

    def load_entry_details(self) -> list[EntryDetail]:
        rows = self.session.scalars(
            select(BudgetEntryDetail).order_by(
                BudgetEntryDetail.parent_id, BudgetEntryDetail.position
            )
        ).all()
        return [_to_detail(row) for row in rows]

    def save_entry_details(self, details: Iterable[EntryDetail]) -> list[EntryDetail]:
        wanted = list(details)
        return self._write("save entry details", lambda: self._save_details(wanted))

    def _save_details(self, details: list[EntryDetail]) -> list[EntryDetail]:
        parent_ids = set(self.session.scalars(select(BudgetEntry.id)))
        keep_ids = {d.id for d in details if not is_provisional(d.id)}
        existing = {
            row.id: row for row in self.session.scalars(select(BudgetEntryDetail))
        }
        for row_id, row in existing.items():
            if row_id not in keep_ids:
                self.session.delete(row)

        out: list[EntryDetail] = []
        positions: dict[str, int] = {}
        for detail in details:
            if detail.parent_id not in parent_ids:
                logger.warning(
                    f"detail_orphan_skipped: detail_id={detail.id} parent_id={detail.parent_id}"
                )
                continue
            row = None if is_provisional(detail.id) else existing.get(detail.id)
            if row is None:
                row = BudgetEntryDetail(
                    id=_server_id() if is_provisional(detail.id) else detail.id
                )
                self.session.add(row)
            position = positions.get(detail.parent_id, 0)
            positions[detail.parent_id] = position + 1
            row.parent_id = detail.parent_id
            row.item = detail.item
            row.amount = detail.amount
            row.position = position
            out.append(
                EntryDetail(
                    id=row.id,
                    parent_id=detail.parent_id,
                    item=detail.item,
                    amount=detail.amount,
                )
            )
        self.session.flush()
        return out

    # -- keyword rules -----------------------------------------------------

    def ensure_default_keywords(self) -> bool:
        """Write the default keywords once, on a fresh database.

        A marker row records the seeding, so a table the user emptied stays
        empty. Returns True when the defaults were written.
        """
        if self.session.get(BudgetMeta, KEYWORDS_SEEDED_KEY) is not None:
            return False
        has_rows = self.session.scalars(select(BudgetKeyword.id).limit(1)).first()

        def _seed() -> bool:
            if has_rows is None:
                self._replace_keywords(default_keywords())
            self.session.add(BudgetMeta(key=KEYWORDS_SEEDED_KEY, value="1"))
            self.session.flush()
            return has_rows is None

        seeded = self._write("seed default keywords", _seed)
        if seeded:
            logger.info("keywords_seeded: source=defaults")
        return seeded

    def load_keywords(self) -> KeywordMap:
        rows = self.session.scalars(
            select(BudgetKeyword).order_by(BudgetKeyword.position, BudgetKeyword.id)
        ).all()
        raw: dict[CategoryId, list[str]] = {cat: [] for cat in CATEGORY_ORDER}
        for row in rows:
            raw[row.category].append(row.word)
        return normalize_keywords(raw)

    def save_keywords(self, keywords: Mapping[CategoryId, list[str]]) -> None:
        self._write("save keywords", lambda: self._replace_keywords(keywords))

    def _replace_keywords(self, keywords: Mapping[CategoryId, list[str]]) -> None:
        self.session.execute(delete(BudgetKeyword))
        for cat in CATEGORY_ORDER:
            for position, word in enumerate(keywords.get(cat, [])):
                self.session.add(BudgetKeyword(category=cat, word=word, position=position))
        self.session.flush()

    def load_month_extras(self) -> MonthExtras:
        rows = self.session.scalars(
            select(MonthExtraKeyword).order_by(
                MonthExtraKeyword.year_month,
                MonthExtraKeyword.position,
                MonthExtraKeyword.id,
            )
        ).all()
        extras: MonthExtras = {}
        for row in rows:
            extras.setdefault(row.year_month, {}).setdefault(row.category, []).append(
                row.word
            )
        return extras

    def save_month_extras(
        self, extras: Mapping[str, Mapping[CategoryId, list[str]]]
    ) -> None:
        def _replace() -> None:
            self.session.execute(delete(MonthExtraKeyword))
            for year_month, by_category in extras.items():
                for cat, words in by_category.items():
                    for position, word in enumerate(words):
                        self.session.add(
                            MonthExtraKeyword(
                                year_month=year_month,
                                category=cat,
                                word=word,
                                position=position,
                            )
                        )
            self.session.flush()

        self._write("save month extras", _replace)

    def load_rules(self) -> RuleSet:
        return RuleSet(base=self.load_keywords(), month_extras=self.load_month_extras())
