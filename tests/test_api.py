from collections.abc import Iterator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from database import init_db, make_engine
from main import app, get_db


@pytest.fixture()
def client() -> Iterator[TestClient]:
    engine = make_engine("sqlite://", poolclass=StaticPool)
    init_db(engine)
    TestingSession = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)

    def _get_db() -> Iterator[Session]:
        db = TestingSession()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = _get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def test_entry_lifecycle(client: TestClient) -> None:
    created = client.post(
        "/api/entries", json={"date": "2025-03-05", "item": "Lunch", "amount": "12,000"}
    )
    assert created.status_code == 200
    entry = created.json()["entry"]
    assert entry["amount"] == 12_000
    assert not entry["id"].startswith("tmp-")

    patched = client.patch(f"/api/entries/{entry['id']}", json={"item": "Dinner"})
    assert patched.json()["entry"]["item"] == "Dinner"

    listed = client.get("/api/entries", params={"q": "dinner"}).json()["items"]
    assert [e["id"] for e in listed] == [entry["id"]]

    assert client.delete(f"/api/entries/{entry['id']}").status_code == 200
    assert client.delete(f"/api/entries/{entry['id']}").status_code == 404


def test_blank_entry_is_ignored(client: TestClient) -> None:
    resp = client.post("/api/entries", json={"date": "2025-03-05", "item": " ", "amount": 5})
    assert resp.status_code == 200
    assert resp.json() == {"entry": None}
    assert client.get("/api/entries").json() == {"items": []}


def test_card_expense_and_details(client: TestClient) -> None:
    resp = client.post(
        "/api/card-expenses",
        json={
            "date": "2025-03-05",
            "item": "Card withdrawal",
            "amount": 100_000,
            "details": [{"item": "groceries", "amount": 30_000}],
        },
    )
    body = resp.json()
    entry_id = body["entry"]["id"]
    assert [d["parent_id"] for d in body["details"]] == [entry_id]

    replaced = client.put(
        f"/api/entries/{entry_id}/details",
        json=[{"item": "dog food", "amount": 20_000}, {"item": "vet", "amount": 10_000}],
    )
    assert [d["item"] for d in replaced.json()["details"]] == ["dog food", "vet"]

    fetched = client.get(f"/api/entries/{entry_id}/details").json()
    assert [d["amount"] for d in fetched["details"]] == [20_000, 10_000]
    assert client.get("/api/entries/missing/details").status_code == 404


def test_keywords_and_month_report(client: TestClient) -> None:
    added = client.post(
        "/api/keywords",
        json={"category": "living cost", "word": "bakery", "persist_globally": False, "year_month": "2025-03"},
    )
    assert added.json() == {"ok": True, "category": "LivingCost"}
    assert client.post("/api/keywords", json={"category": "nope", "word": "x"}).status_code == 400

    keywords = client.get("/api/keywords", params={"month": "2025-03"}).json()
    living = next(c for c in keywords["categories"] if c["category"] == "LivingCost")
    assert living["extra"] == ["bakery"]

    client.post("/api/entries", json={"date": "2025-03-02", "item": "VAT payment", "amount": 300_000})
    client.post("/api/entries", json={"date": "2025-03-04", "item": "Bakery", "amount": 8_000})

    summary = client.get("/api/reports/month", params={"month": "2025-03"}).json()
    assert summary["total_display"] == 308_000
    assert [row["category"] for row in summary["by_category"]] == ["Tax", "LivingCost"]

    items = client.get(
        "/api/reports/items",
        params={"category": "Living costs", "period": "month", "month": "2025-03"},
    ).json()
    assert items == [
        {
            "item": "Bakery",
            "total": 8_000,
            "entries": [{"entry_id": items[0]["entries"][0]["entry_id"], "date": "2025-03-04", "amount": 8_000}],
        }
    ]
    assert client.get("/api/reports/month", params={"month": "2025-3x"}).status_code == 400


def test_export_csv(client: TestClient) -> None:
    client.post("/api/entries", json={"date": "2025-03-02", "item": "VAT payment", "amount": 300_000})
    client.post("/api/entries", json={"date": "2025-05-02", "item": "=cmd", "amount": 1_000})

    resp = client.get("/api/export.csv", params={"year": 2025, "months": "3,5"})

    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/csv")
    lines = resp.text.strip().splitlines()
    assert lines[0] == "Date,Item,Category,Amount"
    assert lines[1] == "2025-03-02,VAT payment,Taxes & utilities,300000"
    assert lines[2] == "2025-05-02,\t=cmd,Living costs,1000"


def test_week_and_year_reports(client: TestClient) -> None:
    client.post("/api/entries", json={"date": "2024-03-05", "item": "Lunch", "amount": 1_000})
    week = client.get("/api/reports/week", params={"date": "2024-03-06"}).json()
    assert week == {"start": "2024-03-03", "end": "2024-03-09", "total": 1_000}

    year = client.get("/api/reports/year/2024").json()
    assert year["total"] == 50_312_782
    assert client.get("/api/reports/week", params={"date": "nope"}).status_code == 400


def test_delete_detail(client: TestClient) -> None:
    body = client.post(
        "/api/card-expenses",
        json={
            "date": "2025-03-05",
            "item": "Card withdrawal",
            "amount": 100_000,
            "details": [{"item": "groceries", "amount": 30_000}],
        },
    ).json()
    entry_id = body["entry"]["id"]
    detail_id = body["details"][0]["id"]

    assert client.delete(f"/api/details/{detail_id}").json() == {"ok": True}
    assert client.get(f"/api/entries/{entry_id}/details").json()["details"] == []
    assert client.delete(f"/api/details/{detail_id}").status_code == 404
