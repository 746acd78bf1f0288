from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from models import AccountType, TransactionType
from money import MAX_AMOUNT


class AccountIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    type: AccountType
    initial_balance: Decimal = Field(default=Decimal("0.00"), ge=0, le=MAX_AMOUNT)

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Account name is required")
        return value


class AccountUpdate(BaseModel):
    name: Optional[str] = Field(default=None, max_length=255)
    type: Optional[AccountType] = None
    initial_balance: Optional[Decimal] = Field(default=None, ge=0, le=MAX_AMOUNT)

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        value = value.strip()
        if not value:
            raise ValueError("Account name must not be blank")
        return value


class TransactionIn(BaseModel):
    amount: Decimal = Field(..., gt=0)
    type: TransactionType
    description: str = Field(..., min_length=1, max_length=500)
    account_id: int
    category_id: Optional[int] = None
    transaction_date: Optional[date] = None


class TransactionUpdate(BaseModel):
    amount: Optional[Decimal] = Field(default=None, gt=0)
    type: Optional[TransactionType] = None
    description: Optional[str] = Field(default=None, max_length=500)
    account_id: Optional[int] = None
    category_id: Optional[int] = None
    transaction_date: Optional[date] = None


class CategoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: Optional[str] = None
    is_default: bool


class AccountOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    type: AccountType
    initial_balance: Decimal
    current_balance: Decimal
    created_at: datetime
    updated_at: datetime


class AccountRef(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    type: AccountType


class TransactionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    amount: Decimal
    type: TransactionType
    description: str
    transaction_date: date
    account: AccountRef
    category: CategoryOut
    created_at: datetime
    updated_at: datetime


class TransactionPage(BaseModel):
    items: list[TransactionOut]
    page: int
    size: int
    total: int


class BalanceOut(BaseModel):
    account_id: Optional[int] = None
    balance: Decimal


class MonthlySummary(BaseModel):
    month: str
    total_income: Decimal
    total_expenses: Decimal
    net_savings: Decimal
    savings_rate: Decimal


class CategoryBreakdown(BaseModel):
    category_id: int
    category_name: str
    amount: Decimal
    percentage: Decimal
    transaction_count: int


class SpendingByCategory(BaseModel):
    start_date: date
    end_date: date
    total_expenses: Decimal
    categories: list[CategoryBreakdown]


class SavingsRateOut(BaseModel):
    start_date: date
    end_date: date
    savings_rate: Decimal
