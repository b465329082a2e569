from __future__ import annotations

import logging
from collections import defaultdict, deque
from dataclasses import dataclass, replace
from typing import Iterable, Mapping, Optional, Sequence
from uuid import uuid4

logger = logging.getLogger(__name__)

PROVISIONAL_PREFIX = "tmp-"

_PATCHABLE_FIELDS = ("date", "item", "amount")


@dataclass(frozen=True)
class Entry:
    id: str
    date: str  # YYYY-MM-DD
    item: str
    amount: int


@dataclass(frozen=True)
class EntryDetail:
    id: str
    parent_id: str
    item: str
    amount: int


def new_provisional_id() -> str:
    return f"{PROVISIONAL_PREFIX}{uuid4().hex[:12]}"


def is_provisional(entry_id: str) -> bool:
    return entry_id.startswith(PROVISIONAL_PREFIX)


def detail_total(details: Iterable[EntryDetail]) -> int:
    return sum(d.amount for d in details)


def remainder(entry: Entry, details: Sequence[EntryDetail]) -> int:
    """Part of ``entry`` its details leave unclassified, clamped at zero."""
    return max(0, entry.amount - detail_total(details))


def overallocation(entry: Entry, details: Sequence[EntryDetail]) -> int:
    """How far the details overshoot the parent total (0 when they fit)."""
    return max(0, detail_total(details) - entry.amount)


def group_details(details: Iterable[EntryDetail]) -> dict[str, list[EntryDetail]]:
    grouped: dict[str, list[EntryDetail]] = defaultdict(list)
    for detail in details:
        grouped[detail.parent_id].append(detail)
    return dict(grouped)


def search_entries(entries: Iterable[Entry], query: Optional[str]) -> list[Entry]:
    q = (query or "").strip().lower()
    if not q:
        return list(entries)
    return [e for e in entries if q in e.item.lower()]


class EntryStore:
    """In-memory entries and their detail rows.

    Provisional ids (``tmp-...``) are handed out locally; once persistence
    returns the authoritative list, :meth:`reconcile_entries` records which
    server id each provisional id became so later detail inserts that still
    carry the old id land on the right parent.
    """

    def __init__(
        self,
        entries: Iterable[Entry] = (),
        details: Iterable[EntryDetail] = (),
    ) -> None:
        self._entries: list[Entry] = []
        self._details: list[EntryDetail] = []
        self._id_remap: dict[str, str] = {}
        self.replace_all(entries)
        self.replace_details(details)

    @property
    def entries(self) -> list[Entry]:
        return list(self._entries)

    @property
    def details(self) -> list[EntryDetail]:
        return list(self._details)

    def resolve_id(self, entry_id: str) -> str:
        return self._id_remap.get(entry_id, entry_id)

    def find(self, entry_id: str) -> Optional[Entry]:
        target = self.resolve_id(entry_id)
        for entry in self._entries:
            if entry.id == target:
                return entry
        return None

    def get(self, entry_id: str) -> Entry:
        entry = self.find(entry_id)
        if entry is None:
            raise ValueError("Entry not found")
        return entry

    def details_for(self, entry_id: str) -> list[EntryDetail]:
        target = self.resolve_id(entry_id)
        return [d for d in self._details if d.parent_id == target]

    def insert(self, entry: Entry) -> Entry:
        if self.find(entry.id) is not None:
            raise ValueError("Entry id already exists")
        self._entries.append(entry)
        return entry

    def insert_detail_rows(self, details: Iterable[EntryDetail]) -> list[EntryDetail]:
        added: list[EntryDetail] = []
        known_ids = {d.id for d in self._details}
        for detail in details:
            parent = self.get(detail.parent_id)
            row = replace(
                detail,
                id=detail.id or new_provisional_id(),
                parent_id=parent.id,
            )
            if row.id in known_ids:
                raise ValueError("Detail id already exists")
            known_ids.add(row.id)
            added.append(row)
        self._details.extend(added)
        return added

    def replace_all(self, entries: Iterable[Entry]) -> None:
        """Swap in a full entry list; details of vanished parents go too."""
        fresh = list(entries)
        ids = [e.id for e in fresh]
        if len(ids) != len(set(ids)):
            raise ValueError("Duplicate entry id")
        self._entries = fresh
        self._drop_orphans()

    def replace_details(self, details: Iterable[EntryDetail]) -> None:
        self._details = list(details)
        self._drop_orphans()

    def replace_details_for(
        self, entry_id: str, details: Iterable[EntryDetail]
    ) -> list[EntryDetail]:
        parent = self.get(entry_id)
        self._details = [d for d in self._details if d.parent_id != parent.id]
        rows = [replace(d, parent_id=parent.id) for d in details]
        return self.insert_detail_rows(rows)

    def remove_entry(self, entry_id: str) -> Entry:
        entry = self.get(entry_id)
        self._entries = [e for e in self._entries if e.id != entry.id]
        self._details = [d for d in self._details if d.parent_id != entry.id]
        return entry

    def remove_detail(self, detail_id: str) -> EntryDetail:
        for detail in self._details:
            if detail.id == detail_id:
                self._details = [d for d in self._details if d.id != detail_id]
                return detail
        raise ValueError("Detail not found")

    def update_entry(self, entry_id: str, patch: Mapping[str, object]) -> Entry:
        entry = self.get(entry_id)
        unknown = set(patch) - set(_PATCHABLE_FIELDS)
        if unknown:
            raise ValueError(f"Unknown entry fields: {', '.join(sorted(unknown))}")
        updated = replace(entry, **dict(patch))
        self._entries = [updated if e.id == entry.id else e for e in self._entries]
        return updated

    def reconcile_entries(self, saved: Iterable[Entry]) -> dict[str, str]:
        """Adopt the authoritative post-save list.

        Provisional local entries are paired with the new server rows by
        (date, item, amount) in order. Returns the newly learned remaps.
        """
        saved_list = list(saved)
        local_ids = {e.id for e in self._entries}
        fresh: dict[tuple[str, str, int], deque[str]] = defaultdict(deque)
        for entry in saved_list:
            if entry.id not in local_ids:
                fresh[(entry.date, entry.item, entry.amount)].append(entry.id)

        learned: dict[str, str] = {}
        for entry in self._entries:
            if not is_provisional(entry.id):
                continue
            queue = fresh.get((entry.date, entry.item, entry.amount))
            if queue:
                learned[entry.id] = queue.popleft()

        self._id_remap.update(learned)
        self._details = [
            replace(d, parent_id=learned[d.parent_id]) if d.parent_id in learned else d
            for d in self._details
        ]
        self._entries = saved_list
        self._drop_orphans()
        if learned:
            logger.debug(f"entries_reconciled: remapped={len(learned)}")
        return learned

    def search(self, query: Optional[str]) -> list[Entry]:
        return search_entries(self._entries, query)

    def _drop_orphans(self) -> None:
        ids = {e.id for e in self._entries}
        kept = [d for d in self._details if d.parent_id in ids]
        dropped = len(self._details) - len(kept)
        if dropped:
            logger.info(f"details_dropped_orphans: count={dropped}")
        self._details = kept
