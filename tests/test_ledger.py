import pytest

from ledger import (
    Entry,
    EntryDetail,
    EntryStore,
    is_provisional,
    new_provisional_id,
    overallocation,
    remainder,
)


def test_remainder_is_what_details_leave_uncovered() -> None:
    entry = Entry(id="e1", date="2025-03-05", item="Card withdrawal", amount=100_000)
    details = [
        EntryDetail(id="d1", parent_id="e1", item="groceries", amount=30_000),
        EntryDetail(id="d2", parent_id="e1", item="vet", amount=20_000),
    ]
    assert remainder(entry, details) == 50_000
    assert overallocation(entry, details) == 0


def test_overallocated_remainder_is_clamped_to_zero() -> None:
    entry = Entry(id="e1", date="2025-03-05", item="Card withdrawal", amount=100_000)
    details = [
        EntryDetail(id="d1", parent_id="e1", item="groceries", amount=70_000),
        EntryDetail(id="d2", parent_id="e1", item="vet", amount=50_000),
    ]
    assert remainder(entry, details) == 0
    assert overallocation(entry, details) == 20_000


def test_remove_entry_cascades_to_details() -> None:
    store = EntryStore(
        [
            Entry(id="e1", date="2025-03-05", item="Card", amount=100),
            Entry(id="e2", date="2025-03-06", item="Lunch", amount=10),
        ],
        [
            EntryDetail(id="d1", parent_id="e1", item="a", amount=40),
            EntryDetail(id="d2", parent_id="e1", item="b", amount=40),
        ],
    )

    removed = store.remove_entry("e1")

    assert removed.id == "e1"
    assert [e.id for e in store.entries] == ["e2"]
    assert store.details == []
    with pytest.raises(ValueError, match="Entry not found"):
        store.remove_entry("e1")


def test_details_require_a_known_parent() -> None:
    store = EntryStore([Entry(id="e1", date="2025-03-05", item="Card", amount=100)])
    with pytest.raises(ValueError, match="Entry not found"):
        store.insert_detail_rows(
            [EntryDetail(id="d1", parent_id="missing", item="a", amount=1)]
        )
    added = store.insert_detail_rows(
        [EntryDetail(id="", parent_id="e1", item="a", amount=1)]
    )
    assert is_provisional(added[0].id)


def test_reconcile_remaps_provisional_ids() -> None:
    store = EntryStore([Entry(id="srv-1", date="2025-03-01", item="Rent", amount=500)])
    provisional = Entry(
        id=new_provisional_id(), date="2025-03-05", item="Card", amount=100
    )
    store.insert(provisional)
    store.insert_detail_rows(
        [EntryDetail(id="d1", parent_id=provisional.id, item="groceries", amount=60)]
    )

    learned = store.reconcile_entries(
        [
            Entry(id="srv-2", date="2025-03-05", item="Card", amount=100),
            Entry(id="srv-1", date="2025-03-01", item="Rent", amount=500),
        ]
    )

    assert learned == {provisional.id: "srv-2"}
    assert store.resolve_id(provisional.id) == "srv-2"
    assert store.get(provisional.id).id == "srv-2"
    assert [d.parent_id for d in store.details] == ["srv-2"]

    # a late insert that still carries the provisional id lands on the server row
    store.insert_detail_rows(
        [EntryDetail(id="d2", parent_id=provisional.id, item="vet", amount=30)]
    )
    assert [d.id for d in store.details_for("srv-2")] == ["d1", "d2"]


def test_update_entry_patches_allowed_fields() -> None:
    store = EntryStore([Entry(id="e1", date="2025-03-05", item="Lunch", amount=100)])

    updated = store.update_entry("e1", {"item": "Dinner", "amount": 250})

    assert updated == Entry(id="e1", date="2025-03-05", item="Dinner", amount=250)
    assert store.entries == [updated]
    with pytest.raises(ValueError, match="Unknown entry fields"):
        store.update_entry("e1", {"id": "other"})


def test_store_rejects_duplicate_ids() -> None:
    store = EntryStore([Entry(id="e1", date="2025-03-05", item="Lunch", amount=100)])
    with pytest.raises(ValueError):
        store.insert(Entry(id="e1", date="2025-03-06", item="Dinner", amount=1))
    with pytest.raises(ValueError, match="Duplicate entry id"):
        store.replace_all(
            [
                Entry(id="e2", date="2025-03-05", item="a", amount=1),
                Entry(id="e2", date="2025-03-06", item="b", amount=2),
            ]
        )


def test_replace_all_drops_orphaned_details() -> None:
    store = EntryStore(
        [Entry(id="e1", date="2025-03-05", item="Card", amount=100)],
        [EntryDetail(id="d1", parent_id="e1", item="a", amount=40)],
    )
    store.replace_all([Entry(id="e2", date="2025-03-06", item="Lunch", amount=10)])
    assert store.details == []


def test_search_is_case_insensitive_substring() -> None:
    store = EntryStore(
        [
            Entry(id="e1", date="2025-03-05", item="Dog food", amount=1),
            Entry(id="e2", date="2025-03-06", item="Lunch", amount=2),
        ]
    )
    assert [e.id for e in store.search("DOG")] == ["e1"]
    assert len(store.search("  ")) == 2
