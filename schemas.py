import datetime as dt
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from csv_utils import parse_amount

# Blank items and zero amounts pass validation on purpose: the services
# ignore them instead of failing the request.


def _coerce_amount(value: Any) -> Any:
    if isinstance(value, str):
        return parse_amount(value)
    return value


class EntryIn(BaseModel):
    date: dt.date
    item: str = Field(..., max_length=200)
    amount: int

    @field_validator("amount", mode="before")
    @classmethod
    def amount_from_text(cls, v: Any) -> Any:
        return _coerce_amount(v)


class EntryPatch(BaseModel):
    model_config = ConfigDict(extra="forbid")

    date: Optional[dt.date] = None
    item: Optional[str] = Field(default=None, max_length=200)
    amount: Optional[int] = None

    @field_validator("amount", mode="before")
    @classmethod
    def amount_from_text(cls, v: Any) -> Any:
        return _coerce_amount(v)


class EntryDetailIn(BaseModel):
    item: str = Field(..., max_length=200)
    amount: int

    @field_validator("amount", mode="before")
    @classmethod
    def amount_from_text(cls, v: Any) -> Any:
        return _coerce_amount(v)


class CardExpenseIn(EntryIn):
    details: list[EntryDetailIn] = Field(default_factory=list)


class KeywordIn(BaseModel):
    category: str = Field(..., min_length=1, max_length=40)
    word: str = Field(..., max_length=100)
    persist_globally: bool = True
    year_month: Optional[str] = Field(default=None, pattern=r"^\d{4}-\d{2}$")


class KeywordRemoveIn(BaseModel):
    category: str = Field(..., min_length=1, max_length=40)
    word: str = Field(..., max_length=100)
    is_month_only: bool = False
    year_month: Optional[str] = Field(default=None, pattern=r"^\d{4}-\d{2}$")


class ExportQuery(BaseModel):
    year: int = Field(..., ge=1970, le=3000)
    month: Optional[int] = Field(default=None, ge=1, le=12)
    months: list[int] = Field(default_factory=list)
