from datetime import date

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session

from database import init_db
from ledger import Entry, is_provisional, new_provisional_id
from models import BudgetEntry, BudgetEntryDetail, CategoryId, DisplayCategory
from repository import BudgetRepository, PersistenceError
from schemas import CardExpenseIn, EntryDetailIn, EntryIn, EntryPatch, ExportQuery
from seed import SeedTable
from services import (
    CategoryAmbiguous,
    CategoryNotFound,
    EntryService,
    KeywordService,
    ReportService,
    resolve_category_name,
)


def _session() -> Session:
    engine = create_engine("sqlite:///:memory:")
    init_db(engine)
    return Session(engine)


class FailingEntriesRepository(BudgetRepository):
    def save_entries(self, entries):
        raise PersistenceError("Could not save entries")


def test_add_entry_assigns_server_id() -> None:
    with _session() as session:
        service = EntryService(session)

        entry = service.add_entry(
            EntryIn(date=date(2025, 3, 5), item="  Lunch ", amount=12_000)
        )

        assert entry is not None
        assert not is_provisional(entry.id)
        assert entry.item == "Lunch"
        assert BudgetRepository(session).load_entries() == [entry]


def test_blank_item_or_non_positive_amount_is_ignored() -> None:
    with _session() as session:
        service = EntryService(session)

        assert service.add_entry(EntryIn(date=date(2025, 3, 5), item="  ", amount=10)) is None
        assert service.add_entry(EntryIn(date=date(2025, 3, 5), item="Lunch", amount=0)) is None
        assert BudgetRepository(session).load_entries() == []


def test_text_amounts_are_parsed() -> None:
    data = EntryIn(date=date(2025, 3, 5), item="Lunch", amount="₩ 12,000원")
    assert data.amount == 12_000


def test_card_expense_details_attach_to_saved_entry() -> None:
    with _session() as session:
        service = EntryService(session)

        created = service.add_card_expense(
            CardExpenseIn(
                date=date(2025, 3, 5),
                item="Card withdrawal",
                amount=100_000,
                details=[
                    EntryDetailIn(item="groceries", amount=30_000),
                    EntryDetailIn(item=" ", amount=5_000),
                    EntryDetailIn(item="vet", amount=20_000),
                ],
            )
        )

        assert created is not None
        entry, details = created
        assert [d.item for d in details] == ["groceries", "vet"]
        assert {d.parent_id for d in details} == {entry.id}
        assert all(not is_provisional(d.id) for d in details)

        reloaded = EntryService(session)
        assert [d.item for d in reloaded.details_for(entry.id)] == ["groceries", "vet"]


def test_remove_entry_deletes_its_details() -> None:
    with _session() as session:
        service = EntryService(session)
        created = service.add_card_expense(
            CardExpenseIn(
                date=date(2025, 3, 5),
                item="Card withdrawal",
                amount=100,
                details=[EntryDetailIn(item="groceries", amount=40)],
            )
        )
        assert created is not None
        entry, _ = created

        service.remove_entry(entry.id)

        assert BudgetRepository(session).load_entries() == []
        assert session.scalars(select(BudgetEntryDetail)).all() == []
        with pytest.raises(ValueError, match="Entry not found"):
            service.remove_entry(entry.id)


def test_update_entry_patches_and_ignores_invalid_values() -> None:
    with _session() as session:
        service = EntryService(session)
        entry = service.add_entry(EntryIn(date=date(2025, 3, 5), item="Lunch", amount=100))
        assert entry is not None

        updated = service.update_entry(entry.id, EntryPatch(item="Dinner", amount=250))
        assert updated == Entry(id=entry.id, date="2025-03-05", item="Dinner", amount=250)

        assert service.update_entry(entry.id, EntryPatch(amount=0)) is None
        assert EntryService(session).get(entry.id).amount == 250

        with pytest.raises(ValueError, match="Entry not found"):
            service.update_entry("missing", EntryPatch(item="x"))


def test_failed_save_reloads_stored_state() -> None:
    with _session() as session:
        BudgetRepository(session).save_entries(
            [Entry(id=new_provisional_id(), date="2025-03-01", item="Rent", amount=500)]
        )
        service = EntryService(session, repository=FailingEntriesRepository(session))

        with pytest.raises(PersistenceError):
            service.add_entry(EntryIn(date=date(2025, 3, 5), item="Lunch", amount=10))

        assert [e.item for e in service.list_entries()] == ["Rent"]


def test_repository_rolls_back_rejected_writes() -> None:
    with _session() as session:
        repo = BudgetRepository(session)
        with pytest.raises(PersistenceError, match="Could not save entries"):
            repo.save_entries(
                [Entry(id=new_provisional_id(), date="2025-03-01", item="Bad", amount=-1)]
            )
        assert repo.load_entries() == []


def test_keyword_service_starts_from_defaults_and_persists_changes() -> None:
    with _session() as session:
        service = KeywordService(session)
        assert "VAT" in service.rules.base[CategoryId.tax]

        service.add_keyword(CategoryId.fixed_cost, "VAT", True, "2025-03")
        service.add_keyword(CategoryId.business_expense, "notion", False, "2025-03")

        reloaded = KeywordService(session)
        assert "VAT" in reloaded.rules.base[CategoryId.fixed_cost]
        assert "VAT" not in reloaded.rules.base[CategoryId.tax]
        assert reloaded.category_view(CategoryId.business_expense, "2025-03").extra == [
            "notion"
        ]
        assert "notion" not in reloaded.rules_for_month("2025-04")[
            CategoryId.business_expense
        ]


def test_keyword_removal_is_persisted() -> None:
    with _session() as session:
        service = KeywordService(session)
        service.add_keyword(CategoryId.tax, "stamp duty", False, "2025-03")
        service.remove_keyword(CategoryId.tax, "stamp duty", True, "2025-03")
        service.remove_keyword(CategoryId.tax, "VAT", False, "2025-03")

        reloaded = KeywordService(session)
        assert reloaded.rules.month_extras == {}
        assert "VAT" not in reloaded.rules.base[CategoryId.tax]


def test_resolve_category_name_accepts_labels_and_typos() -> None:
    assert resolve_category_name("Tax") == CategoryId.tax
    assert resolve_category_name("fixed cost") == CategoryId.fixed_cost
    assert resolve_category_name("Living costs") == CategoryId.living_cost
    assert resolve_category_name("Taz") == CategoryId.tax
    with pytest.raises(CategoryNotFound):
        resolve_category_name("groceries")
    with pytest.raises(CategoryNotFound, match="required"):
        resolve_category_name("  ")
    assert issubclass(CategoryAmbiguous, ValueError)


def test_month_summary_reports_totals_categories_and_overallocation() -> None:
    with _session() as session:
        KeywordService(session).add_keyword(CategoryId.living_cost, "groceries", True, "2025-03")
        entries = EntryService(session)
        entries.add_entry(EntryIn(date=date(2025, 3, 2), item="VAT payment", amount=300_000))
        entries.add_entry(EntryIn(date=date(2025, 3, 5), item="Savings deposit", amount=200_000))
        entries.add_card_expense(
            CardExpenseIn(
                date=date(2025, 3, 5),
                item="Card withdrawal",
                amount=100_000,
                details=[EntryDetailIn(item="groceries", amount=30_000)],
            )
        )
        entries.add_card_expense(
            CardExpenseIn(
                date=date(2025, 3, 9),
                item="Card split",
                amount=10_000,
                details=[EntryDetailIn(item="groceries", amount=12_000)],
            )
        )

        summary = ReportService(session, seed=SeedTable.empty()).month_summary("2025-03")

        assert summary["total_raw"] == 610_000
        assert summary["total_excluded"] == 200_000
        assert summary["total_display"] == 410_000
        by_category = {row["category"]: row["amount"] for row in summary["by_category"]}
        assert by_category == {
            DisplayCategory.tax.value: 300_000,
            DisplayCategory.fixed_cost.value: 200_000,
            DisplayCategory.unclassified.value: 70_000,
            DisplayCategory.living_cost.value: 42_000,
        }
        assert summary["by_category"][0]["category"] == DisplayCategory.tax.value
        assert [a["excess"] for a in summary["overallocated"]] == [2_000]
        assert summary["by_day"] == {
            "2025-03-02": 300_000,
            "2025-03-05": 300_000,
            "2025-03-09": 10_000,
        }


def test_year_overview_prefers_seed_and_export_lists_rows() -> None:
    with _session() as session:
        EntryService(session).add_entry(
            EntryIn(date=date(2025, 3, 2), item="VAT payment", amount=300_000)
        )
        report = ReportService(session)

        overview = report.year_overview(2025)
        assert overview["total"] == 62_880_691

        csv_text = report.export_csv(ExportQuery(year=2025, month=3))
        lines = csv_text.strip().splitlines()
        assert lines[0] == "Date,Item,Category,Amount"
        assert lines[1] == "2025-03-02,VAT payment,Taxes & utilities,300000"
        assert report.export_csv(ExportQuery(year=2025, month=4)).strip() == (
            "Date,Item,Category,Amount"
        )


def test_emptied_keyword_table_stays_empty() -> None:
    with _session() as session:
        repo = BudgetRepository(session)
        repo.save_keywords({cat: [] for cat in CategoryId})

        assert repo.load_keywords() == {cat: [] for cat in CategoryId}
        assert repo.ensure_default_keywords() is False
        assert repo.load_keywords()[CategoryId.tax] == []


def test_removing_last_keyword_survives_reload() -> None:
    with _session() as session:
        BudgetRepository(session).save_keywords({CategoryId.tax: ["vat"]})
        KeywordService(session).remove_keyword(CategoryId.tax, "vat", False, "2025-03")

        assert KeywordService(session).rules.base[CategoryId.tax] == []


def test_default_keywords_are_seeded_once() -> None:
    engine = create_engine("sqlite:///:memory:")
    init_db(engine)
    init_db(engine)
    with Session(engine) as session:
        assert BudgetRepository(session).load_keywords()[CategoryId.tax] == [
            "VAT",
            "income tax",
            "car tax",
            "license tax",
        ]


def test_remove_detail_persists() -> None:
    with _session() as session:
        service = EntryService(session)
        created = service.add_card_expense(
            CardExpenseIn(
                date=date(2025, 3, 5),
                item="Card withdrawal",
                amount=100,
                details=[
                    EntryDetailIn(item="groceries", amount=40),
                    EntryDetailIn(item="vet", amount=30),
                ],
            )
        )
        assert created is not None
        entry, details = created

        service.remove_detail(details[0].id)

        assert [d.item for d in EntryService(session).details_for(entry.id)] == ["vet"]
        with pytest.raises(ValueError, match="Detail not found"):
            service.remove_detail(details[0].id)


def test_entry_table_holds_only_ledger_columns() -> None:
    assert set(BudgetEntry.__table__.columns.keys()) == {
        "id",
        "date",
        "item",
        "amount",
        "created_at",
        "updated_at",
    }
