from datetime import datetime
from enum import Enum

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base


class CategoryId(str, Enum):
    fixed_cost = "FixedCost"
    business_expense = "BusinessExpense"
    tax = "Tax"
    living_cost = "LivingCost"
    other = "Other"


class DisplayCategory(str, Enum):
    """Categories as they appear in reports.

    ``unclassified`` only ever holds the part of a card entry that its
    details do not cover; no keyword can target it.
    """

    fixed_cost = "FixedCost"
    business_expense = "BusinessExpense"
    tax = "Tax"
    living_cost = "LivingCost"
    other = "Other"
    unclassified = "Unclassified"

    @classmethod
    def of(cls, category: CategoryId) -> "DisplayCategory":
        return cls(category.value)


CATEGORY_LABELS: dict[DisplayCategory, str] = {
    DisplayCategory.fixed_cost: "Fixed costs",
    DisplayCategory.business_expense: "Business expenses",
    DisplayCategory.tax: "Taxes & utilities",
    DisplayCategory.living_cost: "Living costs",
    DisplayCategory.other: "Other",
    DisplayCategory.unclassified: "Unclassified",
}

# Declaration order; also decides which category keeps a duplicated keyword.
CATEGORY_ORDER: tuple[CategoryId, ...] = (
    CategoryId.fixed_cost,
    CategoryId.business_expense,
    CategoryId.tax,
    CategoryId.living_cost,
    CategoryId.other,
)

# First match wins. Other is never returned by classification.
CLASSIFY_ORDER: tuple[CategoryId, ...] = (
    CategoryId.fixed_cost,
    CategoryId.business_expense,
    CategoryId.tax,
    CategoryId.living_cost,
)

DEFAULT_CATEGORY = CategoryId.living_cost

# Savings and retirement instruments: still categorized, but left out of
# the headline month spend.
EXCLUDE_FROM_MONTH_TOTAL: tuple[str, ...] = (
    "savings",
    "IRP",
    "ISA",
    "housing subscription",
)

DEFAULT_KEYWORDS: dict[CategoryId, list[str]] = {
    CategoryId.fixed_cost: [
        "health insurance",
        "national pension",
        "housing subscription",
        "savings",
        "IRP",
        "ISA",
        "insurance",
        "car insurance",
        "phone bill",
        "maintenance fee",
        "city gas",
    ],
    CategoryId.business_expense: [
        "GPT",
        "Claude",
        "Genspark",
        "Cursor",
        "Grok",
        "Gemini",
        "imweb",
        "CapCut",
        "Typecast",
        "tax accountant",
    ],
    CategoryId.tax: ["VAT", "income tax", "car tax", "license tax"],
    CategoryId.living_cost: [
        "food",
        "convenience store",
        "dog",
        "delivery",
        "coupang",
        "baemin",
        "kurly",
        "dining out",
    ],
    CategoryId.other: [],
}

CATEGORY_ENUM = SAEnum(
    CategoryId,
    name="budgetcategory",
    values_callable=lambda enum_cls: [member.value for member in enum_cls],
)


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class BudgetEntry(Base, TimestampMixin):
    __tablename__ = "budget_entries"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    # ISO "YYYY-MM-DD"; range filters compare these strings directly
    date: Mapped[str] = mapped_column(String(10), nullable=False)
    item: Mapped[str] = mapped_column(String(200), nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)

    details: Mapped[list["BudgetEntryDetail"]] = relationship(
        "BudgetEntryDetail",
        back_populates="parent",
        cascade="all, delete-orphan",
        order_by="BudgetEntryDetail.position",
    )

    __table_args__ = (
        Index("ix_budget_entries_date", "date"),
        CheckConstraint("amount >= 0", name="ck_budget_entries_amount_positive"),
    )


class BudgetEntryDetail(Base, TimestampMixin):
    __tablename__ = "budget_entry_details"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    parent_id: Mapped[str] = mapped_column(
        ForeignKey("budget_entries.id", ondelete="CASCADE"), nullable=False
    )
    item: Mapped[str] = mapped_column(String(200), nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    parent: Mapped["BudgetEntry"] = relationship(
        "BudgetEntry", back_populates="details"
    )

    __table_args__ = (
        Index("ix_budget_entry_details_parent", "parent_id", "position"),
        CheckConstraint("amount >= 0", name="ck_budget_entry_details_amount_positive"),
    )


class BudgetKeyword(Base, TimestampMixin):
    __tablename__ = "budget_keywords"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    category: Mapped[CategoryId] = mapped_column(CATEGORY_ENUM, nullable=False)
    word: Mapped[str] = mapped_column(String(100), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("category", "word", name="uq_budget_keyword_category_word"),
    )


class MonthExtraKeyword(Base, TimestampMixin):
    __tablename__ = "budget_month_extras"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    year_month: Mapped[str] = mapped_column(String(7), nullable=False)
    category: Mapped[CategoryId] = mapped_column(CATEGORY_ENUM, nullable=False)
    word: Mapped[str] = mapped_column(String(100), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        Index("ix_budget_month_extras_month", "year_month", "category"),
    )


class BudgetMeta(Base):
    """Small key/value flags, e.g. whether the default keywords were seeded."""

    __tablename__ = "budget_meta"

    key: Mapped[str] = mapped_column(String(40), primary_key=True)
    value: Mapped[str] = mapped_column(String(200), nullable=False)
