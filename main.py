import logging
from datetime import date
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from config import get_settings
from database import SessionLocal, init_db
from ledger import Entry, EntryDetail
from models import CATEGORY_LABELS, CATEGORY_ORDER, DisplayCategory
from periods import Period, parse_year_month, resolve_period
from repository import PersistenceError
from schemas import (
    CardExpenseIn,
    EntryDetailIn,
    EntryIn,
    EntryPatch,
    ExportQuery,
    KeywordIn,
    KeywordRemoveIn,
)
from services import (
    CategoryAmbiguous,
    CategoryNotFound,
    EntryService,
    KeywordService,
    ReportService,
    current_year_month,
    resolve_category_name,
    today_local,
)

logging.basicConfig(level=get_settings().log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="Budget Ledger")


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@app.on_event("startup")
def startup_event():
    init_db()


def entry_payload(entry: Entry) -> dict[str, object]:
    return {"id": entry.id, "date": entry.date, "item": entry.item, "amount": entry.amount}


def detail_payload(detail: EntryDetail) -> dict[str, object]:
    return {
        "id": detail.id,
        "parent_id": detail.parent_id,
        "item": detail.item,
        "amount": detail.amount,
    }


def period_from_request(request: Request) -> Period:
    params = request.query_params
    year_raw = params.get("year")
    try:
        return resolve_period(
            params.get("period"),
            params.get("start"),
            params.get("end"),
            month=params.get("month"),
            year=int(year_raw) if year_raw else None,
            today=today_local(),
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def month_from_request(request: Request) -> str:
    year_month = request.query_params.get("month") or current_year_month()
    try:
        parse_year_month(year_month)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return year_month


def category_or_400(raw: str):
    try:
        return resolve_category_name(raw)
    except (CategoryNotFound, CategoryAmbiguous) as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def display_category_or_400(raw: str) -> DisplayCategory:
    if raw.strip().lower() == DisplayCategory.unclassified.value.lower():
        return DisplayCategory.unclassified
    return DisplayCategory.of(category_or_400(raw))


def _persistence_failed(exc: PersistenceError) -> HTTPException:
    return HTTPException(status_code=503, detail=str(exc))


@app.get("/api/entries")
def api_entries(request: Request, db: Session = Depends(get_db)):
    entries = EntryService(db).list_entries(request.query_params.get("q"))
    return {"items": [entry_payload(e) for e in entries]}


@app.post("/api/entries")
def api_create_entry(data: EntryIn, db: Session = Depends(get_db)):
    try:
        entry = EntryService(db).add_entry(data)
    except PersistenceError as exc:
        raise _persistence_failed(exc) from exc
    return {"entry": entry_payload(entry) if entry else None}


@app.post("/api/card-expenses")
def api_create_card_expense(data: CardExpenseIn, db: Session = Depends(get_db)):
    try:
        created = EntryService(db).add_card_expense(data)
    except PersistenceError as exc:
        raise _persistence_failed(exc) from exc
    if created is None:
        return {"entry": None, "details": []}
    entry, details = created
    return {
        "entry": entry_payload(entry),
        "details": [detail_payload(d) for d in details],
    }


@app.patch("/api/entries/{entry_id}")
def api_update_entry(entry_id: str, data: EntryPatch, db: Session = Depends(get_db)):
    try:
        entry = EntryService(db).update_entry(entry_id, data)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except PersistenceError as exc:
        raise _persistence_failed(exc) from exc
    return {"entry": entry_payload(entry) if entry else None}


@app.delete("/api/entries/{entry_id}")
def api_delete_entry(entry_id: str, db: Session = Depends(get_db)):
    try:
        EntryService(db).remove_entry(entry_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except PersistenceError as exc:
        raise _persistence_failed(exc) from exc
    return {"ok": True}


@app.get("/api/entries/{entry_id}/details")
def api_entry_details(entry_id: str, db: Session = Depends(get_db)):
    service = EntryService(db)
    try:
        entry = service.get(entry_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {
        "entry": entry_payload(entry),
        "details": [detail_payload(d) for d in service.details_for(entry.id)],
    }


@app.put("/api/entries/{entry_id}/details")
def api_replace_details(
    entry_id: str, rows: list[EntryDetailIn], db: Session = Depends(get_db)
):
    try:
        details = EntryService(db).replace_details(entry_id, rows)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except PersistenceError as exc:
        raise _persistence_failed(exc) from exc
    return {"details": [detail_payload(d) for d in details]}


@app.delete("/api/details/{detail_id}")
def api_delete_detail(detail_id: str, db: Session = Depends(get_db)):
    try:
        EntryService(db).remove_detail(detail_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except PersistenceError as exc:
        raise _persistence_failed(exc) from exc
    return {"ok": True}


@app.get("/api/keywords")
def api_keywords(request: Request, db: Session = Depends(get_db)):
    year_month = month_from_request(request)
    service = KeywordService(db)
    out = []
    for category in CATEGORY_ORDER:
        view = service.category_view(category, year_month)
        out.append(
            {
                "category": category.value,
                "label": CATEGORY_LABELS[DisplayCategory.of(category)],
                "base": view.base,
                "extra": view.extra,
            }
        )
    return {"year_month": year_month, "categories": out}


@app.post("/api/keywords")
def api_add_keyword(data: KeywordIn, db: Session = Depends(get_db)):
    category = category_or_400(data.category)
    try:
        KeywordService(db).add_keyword(
            category, data.word, data.persist_globally, data.year_month
        )
    except PersistenceError as exc:
        raise _persistence_failed(exc) from exc
    return {"ok": True, "category": category.value}


@app.post("/api/keywords/remove")
def api_remove_keyword(data: KeywordRemoveIn, db: Session = Depends(get_db)):
    category = category_or_400(data.category)
    try:
        KeywordService(db).remove_keyword(
            category, data.word, data.is_month_only, data.year_month
        )
    except PersistenceError as exc:
        raise _persistence_failed(exc) from exc
    return {"ok": True, "category": category.value}


@app.get("/api/reports/month")
def api_month_summary(request: Request, db: Session = Depends(get_db)):
    year_month = month_from_request(request)
    return ReportService(db).month_summary(year_month, request.query_params.get("q"))


@app.get("/api/reports/category-breakdown")
def api_category_breakdown(request: Request, db: Session = Depends(get_db)):
    period = period_from_request(request)
    return ReportService(db).category_breakdown(period, request.query_params.get("q"))


@app.get("/api/reports/items")
def api_item_breakdown(request: Request, db: Session = Depends(get_db)):
    category = display_category_or_400(request.query_params.get("category", ""))
    period = period_from_request(request)
    merge = request.query_params.get("merge") in {"1", "true", "yes", "on"}
    return ReportService(db).item_breakdown(
        category, period, merge_variants=merge, query=request.query_params.get("q")
    )


@app.get("/api/reports/days")
def api_day_entries(request: Request, db: Session = Depends(get_db)):
    period = period_from_request(request)
    return ReportService(db).day_entries(period, request.query_params.get("q"))


@app.get("/api/reports/week")
def api_week(request: Request, db: Session = Depends(get_db)):
    day_raw = request.query_params.get("date")
    try:
        day = date.fromisoformat(day_raw) if day_raw else None
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return ReportService(db).week_summary(day)


@app.get("/api/reports/year/{year}")
def api_year(year: int, db: Session = Depends(get_db)):
    return ReportService(db).year_overview(year)


@app.get("/api/suggestions")
def api_suggestions(request: Request, db: Session = Depends(get_db)):
    year_month = month_from_request(request)
    return ReportService(db).suggestions(request.query_params.get("q", ""), year_month)


@app.get("/api/export.csv")
def api_export(
    year: int,
    month: Optional[int] = None,
    months: Optional[str] = None,
    db: Session = Depends(get_db),
):
    try:
        month_list = [int(m) for m in (months or "").split(",") if m.strip()]
        query = ExportQuery(year=year, month=month, months=month_list)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    csv_text = ReportService(db).export_csv(query)
    filename = f"budget_{year}.csv"
    return StreamingResponse(
        iter([csv_text]),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
