import logging
from datetime import date
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, Header, HTTPException, Query, Response
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from config import get_settings
from database import SessionLocal
from errors import ConflictError, NotFoundError
from models import Account, TransactionType
from periods import YearMonth, current_month
from schemas import (
    AccountIn,
    AccountOut,
    AccountUpdate,
    BalanceOut,
    CategoryOut,
    MonthlySummary,
    SavingsRateOut,
    SpendingByCategory,
    TransactionIn,
    TransactionOut,
    TransactionPage,
    TransactionUpdate,
)
from services import (
    AccountService,
    AnalyticsService,
    CategoryService,
    TransactionFilters,
    TransactionService,
    today_local,
)

settings = get_settings()
logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="Ledger")
api = APIRouter(prefix="/api/v1")


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def acting_user_id(x_user_id: int = Header(..., gt=0)) -> int:
    return x_user_id


def _http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, ConflictError):
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, ValueError):
        return HTTPException(status_code=400, detail=str(exc))
    logger.exception("Unexpected error while handling request")
    return HTTPException(status_code=500, detail="Internal server error")


def _account_out(account: Account, balance) -> AccountOut:
    return AccountOut(
        id=account.id,
        name=account.name,
        type=account.type,
        initial_balance=account.initial_balance,
        current_balance=balance,
        created_at=account.created_at,
        updated_at=account.updated_at,
    )


def _page(items, total: int, page: int, size: int) -> TransactionPage:
    return TransactionPage(
        items=[TransactionOut.model_validate(txn) for txn in items],
        page=page,
        size=size,
        total=total,
    )


@api.get("/accounts", response_model=list[AccountOut])
def list_accounts(
    db: Session = Depends(get_db), user_id: int = Depends(acting_user_id)
):
    service = AccountService(db, user_id)
    try:
        accounts = service.list_all()
        balances = service.balances(accounts)
    except (ValueError, SQLAlchemyError) as exc:
        raise _http_error(exc) from exc
    return [_account_out(a, balances[a.id]) for a in accounts]


@api.post("/accounts", response_model=AccountOut, status_code=201)
def create_account(
    data: AccountIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(acting_user_id),
):
    service = AccountService(db, user_id)
    try:
        account = service.create(data)
        return _account_out(account, service.balance(account.id))
    except (ValueError, SQLAlchemyError) as exc:
        raise _http_error(exc) from exc


@api.get("/accounts/total-balance", response_model=BalanceOut)
def total_balance(
    db: Session = Depends(get_db), user_id: int = Depends(acting_user_id)
):
    try:
        balance = AccountService(db, user_id).total_balance()
    except (ValueError, SQLAlchemyError) as exc:
        raise _http_error(exc) from exc
    return BalanceOut(balance=balance)


@api.get("/accounts/{account_id}", response_model=AccountOut)
def get_account(
    account_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(acting_user_id),
):
    service = AccountService(db, user_id)
    try:
        account = service.get(account_id)
        return _account_out(account, service.balance(account.id))
    except (ValueError, SQLAlchemyError) as exc:
        raise _http_error(exc) from exc


@api.put("/accounts/{account_id}", response_model=AccountOut)
def update_account(
    account_id: int,
    data: AccountUpdate,
    db: Session = Depends(get_db),
    user_id: int = Depends(acting_user_id),
):
    service = AccountService(db, user_id)
    try:
        account = service.update(account_id, data)
        return _account_out(account, service.balance(account.id))
    except (ValueError, SQLAlchemyError) as exc:
        raise _http_error(exc) from exc


@api.delete("/accounts/{account_id}", status_code=204)
def delete_account(
    account_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(acting_user_id),
):
    try:
        AccountService(db, user_id).soft_delete(account_id)
    except (ValueError, SQLAlchemyError) as exc:
        raise _http_error(exc) from exc
    return Response(status_code=204)


@api.get("/accounts/{account_id}/balance", response_model=BalanceOut)
def account_balance(
    account_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(acting_user_id),
):
    try:
        balance = AccountService(db, user_id).balance(account_id)
    except (ValueError, SQLAlchemyError) as exc:
        raise _http_error(exc) from exc
    return BalanceOut(account_id=account_id, balance=balance)


@api.get("/accounts/{account_id}/transactions", response_model=TransactionPage)
def account_transactions(
    account_id: int,
    page: int = Query(default=0, ge=0),
    size: int = Query(default=settings.page_size, ge=1, le=settings.max_page_size),
    db: Session = Depends(get_db),
    user_id: int = Depends(acting_user_id),
):
    try:
        items, total = TransactionService(db, user_id).for_account(
            account_id, page, size
        )
    except (ValueError, SQLAlchemyError) as exc:
        raise _http_error(exc) from exc
    return _page(items, total, page, size)


@api.get("/transactions", response_model=TransactionPage)
def list_transactions(
    account_id: Optional[int] = None,
    category_id: Optional[int] = None,
    type: Optional[TransactionType] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    min_amount: Optional[Decimal] = None,
    max_amount: Optional[Decimal] = None,
    description: Optional[str] = None,
    page: int = Query(default=0, ge=0),
    size: int = Query(default=settings.page_size, ge=1, le=settings.max_page_size),
    db: Session = Depends(get_db),
    user_id: int = Depends(acting_user_id),
):
    try:
        filters = TransactionFilters(
            account_id=account_id,
            category_id=category_id,
            type=type,
            start_date=start_date,
            end_date=end_date,
            min_amount=min_amount,
            max_amount=max_amount,
            description=description,
        )
        items, total = TransactionService(db, user_id).list(filters, page, size)
    except (ValueError, SQLAlchemyError) as exc:
        raise _http_error(exc) from exc
    return _page(items, total, page, size)


@api.post("/transactions", response_model=TransactionOut, status_code=201)
def create_transaction(
    data: TransactionIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(acting_user_id),
):
    try:
        txn = TransactionService(db, user_id).create(data)
    except (ValueError, SQLAlchemyError) as exc:
        raise _http_error(exc) from exc
    return TransactionOut.model_validate(txn)


@api.get("/transactions/{transaction_id}", response_model=TransactionOut)
def get_transaction(
    transaction_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(acting_user_id),
):
    try:
        txn = TransactionService(db, user_id).get(transaction_id)
    except (ValueError, SQLAlchemyError) as exc:
        raise _http_error(exc) from exc
    return TransactionOut.model_validate(txn)


@api.put("/transactions/{transaction_id}", response_model=TransactionOut)
def update_transaction(
    transaction_id: int,
    data: TransactionUpdate,
    db: Session = Depends(get_db),
    user_id: int = Depends(acting_user_id),
):
    try:
        txn = TransactionService(db, user_id).update(transaction_id, data)
    except (ValueError, SQLAlchemyError) as exc:
        raise _http_error(exc) from exc
    return TransactionOut.model_validate(txn)


@api.delete("/transactions/{transaction_id}", status_code=204)
def delete_transaction(
    transaction_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(acting_user_id),
):
    try:
        TransactionService(db, user_id).soft_delete(transaction_id)
    except (ValueError, SQLAlchemyError) as exc:
        raise _http_error(exc) from exc
    return Response(status_code=204)


@api.get("/categories", response_model=list[CategoryOut])
def list_categories(db: Session = Depends(get_db)):
    return [CategoryOut.model_validate(c) for c in CategoryService(db).list_all()]


@api.get("/analytics/monthly-summary", response_model=MonthlySummary)
def monthly_summary(
    month: Optional[str] = None,
    db: Session = Depends(get_db),
    user_id: int = Depends(acting_user_id),
):
    try:
        year_month = YearMonth.parse(month) if month else current_month(today_local())
        return AnalyticsService(db, user_id).monthly_summary(year_month)
    except (ValueError, SQLAlchemyError) as exc:
        raise _http_error(exc) from exc


@api.get("/analytics/spending-by-category", response_model=SpendingByCategory)
def spending_by_category(
    start_date: date,
    end_date: date,
    db: Session = Depends(get_db),
    user_id: int = Depends(acting_user_id),
):
    try:
        return AnalyticsService(db, user_id).spending_by_category(start_date, end_date)
    except (ValueError, SQLAlchemyError) as exc:
        raise _http_error(exc) from exc


@api.get("/analytics/savings-rate", response_model=SavingsRateOut)
def savings_rate(
    start_date: date,
    end_date: date,
    db: Session = Depends(get_db),
    user_id: int = Depends(acting_user_id),
):
    try:
        rate = AnalyticsService(db, user_id).savings_rate(start_date, end_date)
    except (ValueError, SQLAlchemyError) as exc:
        raise _http_error(exc) from exc
    return SavingsRateOut(start_date=start_date, end_date=end_date, savings_rate=rate)


@api.get("/analytics/trends", response_model=list[MonthlySummary])
def trends(
    start_date: date,
    end_date: date,
    db: Session = Depends(get_db),
    user_id: int = Depends(acting_user_id),
):
    try:
        return AnalyticsService(db, user_id).trend_analysis(start_date, end_date)
    except (ValueError, SQLAlchemyError) as exc:
        raise _http_error(exc) from exc


app.include_router(api)
