from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Iterable, Optional
from zoneinfo import ZoneInfo

from sqlalchemy import Select, case, extract, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

import money
from config import get_settings
from errors import ConflictError, NotFoundError, ValidationError
from models import Account, Category, Transaction, TransactionType
from periods import YearMonth, iter_months, validate_range
from schemas import (
    AccountIn,
    AccountUpdate,
    CategoryBreakdown,
    MonthlySummary,
    SpendingByCategory,
    TransactionIn,
    TransactionUpdate,
)

logger = logging.getLogger(__name__)

DEFAULT_CATEGORY_NAME = "Uncategorized"
DEFAULT_CATEGORY_DESCRIPTION = "Default category for uncategorized transactions"


def today_local() -> date:
    return datetime.now(ZoneInfo(get_settings().timezone)).date()


def _clean_description(value: str) -> str:
    description = (value or "").strip()
    if not description:
        raise ValidationError("Description is required")
    return description


def _owned_by(stmt: Select, user_id: int) -> Select:
    # Transactions have no owner column; ownership always comes from Account.
    return (
        stmt.select_from(Transaction)
        .join(Account, Account.id == Transaction.account_id)
        .where(Account.user_id == user_id, Transaction.deleted.is_(False))
    )


@dataclass
class TransactionFilters:
    account_id: Optional[int] = None
    category_id: Optional[int] = None
    type: Optional[TransactionType] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    min_amount: Optional[Decimal] = None
    max_amount: Optional[Decimal] = None
    description: Optional[str] = None


class AccountService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def list_all(self) -> list[Account]:
        stmt = (
            select(Account)
            .where(Account.user_id == self.user_id, Account.deleted.is_(False))
            .order_by(Account.created_at.desc(), Account.id.desc())
        )
        return list(self.session.scalars(stmt).all())

    def get(self, account_id: int) -> Account:
        account = self.session.scalar(
            select(Account).where(
                Account.id == account_id,
                Account.user_id == self.user_id,
                Account.deleted.is_(False),
            )
        )
        if not account:
            raise NotFoundError(f"Account not found with ID: {account_id}")
        return account

    def create(self, data: AccountIn) -> Account:
        account = Account(
            user_id=self.user_id,
            name=data.name.strip(),
            type=data.type,
            initial_balance=money.quantize(data.initial_balance),
        )
        self.session.add(account)
        self.session.commit()
        self.session.refresh(account)
        logger.info(f"account_created: user_id={self.user_id} account_id={account.id}")
        return account

    def update(self, account_id: int, data: AccountUpdate) -> Account:
        account = self.get(account_id)
        if data.name is not None:
            account.name = data.name.strip()
        if data.type is not None:
            account.type = data.type
        if data.initial_balance is not None:
            account.initial_balance = money.quantize(data.initial_balance)
        self.session.commit()
        self.session.refresh(account)
        logger.info(f"account_updated: user_id={self.user_id} account_id={account.id}")
        return account

    def has_transactions(self, account_id: int) -> bool:
        stmt = select(func.count(Transaction.id)).where(
            Transaction.account_id == account_id,
            Transaction.deleted.is_(False),
        )
        return (self.session.execute(stmt).scalar_one() or 0) > 0

    def soft_delete(self, account_id: int) -> None:
        account = self.get(account_id)
        if self.has_transactions(account.id):
            raise ConflictError(
                f"Cannot delete account with existing transactions. Account ID: {account.id}"
            )
        account.deleted = True
        self.session.commit()
        logger.info(f"account_deleted: user_id={self.user_id} account_id={account.id}")

    def balance(self, account_id: int) -> Decimal:
        """Initial balance plus every non-deleted transaction on the account."""
        account = self.get(account_id)
        stmt = _owned_by(
            select(func.coalesce(func.sum(Transaction.amount_cents), 0)), self.user_id
        ).where(Transaction.account_id == account.id)
        total = self.session.execute(stmt).scalar_one()
        return money.from_cents(account.initial_balance_cents + int(total))

    def balances(self, accounts: Iterable[Account]) -> dict[int, Decimal]:
        accounts = list(accounts)
        if not accounts:
            return {}
        stmt = (
            _owned_by(
                select(
                    Transaction.account_id.label("account_id"),
                    func.sum(Transaction.amount_cents).label("total"),
                ),
                self.user_id,
            )
            .where(Transaction.account_id.in_([a.id for a in accounts]))
            .group_by(Transaction.account_id)
        )
        sums = {row.account_id: int(row.total) for row in self.session.execute(stmt)}
        return {
            account.id: money.from_cents(
                account.initial_balance_cents + sums.get(account.id, 0)
            )
            for account in accounts
        }

    def total_balance(self) -> Decimal:
        """Balance across all live accounts in a single aggregate query.

        Transactions are summed per account in a subquery first so each
        initial balance is counted once no matter how many rows it has.
        """
        txn_totals = (
            select(
                Transaction.account_id.label("account_id"),
                func.sum(Transaction.amount_cents).label("total"),
            )
            .where(Transaction.deleted.is_(False))
            .group_by(Transaction.account_id)
            .subquery()
        )
        stmt = (
            select(
                func.coalesce(
                    func.sum(
                        Account.initial_balance_cents
                        + func.coalesce(txn_totals.c.total, 0)
                    ),
                    0,
                )
            )
            .select_from(Account)
            .outerjoin(txn_totals, txn_totals.c.account_id == Account.id)
            .where(Account.user_id == self.user_id, Account.deleted.is_(False))
        )
        return money.from_cents(self.session.execute(stmt).scalar_one())

    def total_balance_by_accounts(self) -> Decimal:
        return sum(
            (self.balance(account.id) for account in self.list_all()), money.ZERO
        )


class CategoryService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def list_all(self) -> list[Category]:
        return list(self.session.scalars(select(Category).order_by(Category.name)).all())

    def get(self, category_id: int) -> Category:
        category = self.session.get(Category, category_id)
        if not category:
            raise NotFoundError(f"Category not found with ID: {category_id}")
        return category

    def resolve(self, category_id: Optional[int] = None) -> Category:
        if category_id is not None:
            return self.get(category_id)
        return self.get_or_create_default()

    def _find_default(self) -> Optional[Category]:
        return self.session.scalar(select(Category).where(Category.is_default.is_(True)))

    def get_or_create_default(self) -> Category:
        existing = self._find_default()
        if existing:
            return existing

        # A plain category may already hold the default name; promote it.
        category = self.session.scalar(
            select(Category).where(
                Category.name == DEFAULT_CATEGORY_NAME, Category.is_default.is_(False)
            )
        )
        created = category is None
        if created:
            category = Category(
                name=DEFAULT_CATEGORY_NAME,
                description=DEFAULT_CATEGORY_DESCRIPTION,
                is_default=True,
            )
            self.session.add(category)
        else:
            category.is_default = True
        try:
            self.session.commit()
        except IntegrityError:
            # Another caller created the default first; use its row.
            self.session.rollback()
            winner = self._find_default()
            if winner is None:
                raise
            logger.info(f"default_category_race_lost: category_id={winner.id}")
            return winner
        self.session.refresh(category)
        event = "default_category_created" if created else "default_category_promoted"
        logger.info(f"{event}: category_id={category.id}")
        return category


class TransactionService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id
        self.accounts = AccountService(session, user_id)
        self.categories = CategoryService(session)

    def _select(self) -> Select:
        return _owned_by(
            select(Transaction).options(
                joinedload(Transaction.account), joinedload(Transaction.category)
            ),
            self.user_id,
        )

    def create(self, data: TransactionIn) -> Transaction:
        account = self.accounts.get(data.account_id)
        amount = money.to_signed_amount(data.amount, data.type)
        description = _clean_description(data.description)
        category = self.categories.resolve(data.category_id)

        txn = Transaction(
            amount=amount,
            description=description,
            transaction_date=data.transaction_date or today_local(),
            account=account,
            category=category,
        )
        self.session.add(txn)
        self.session.commit()
        self.session.refresh(txn)
        logger.info(
            f"transaction_created: user_id={self.user_id} transaction_id={txn.id} "
            f"account_id={account.id} category_id={category.id}"
        )
        return txn

    def get(self, transaction_id: int) -> Transaction:
        txn = self.session.scalar(self._select().where(Transaction.id == transaction_id))
        if not txn:
            raise NotFoundError(f"Transaction not found with ID: {transaction_id}")
        return txn

    def update(self, transaction_id: int, data: TransactionUpdate) -> Transaction:
        txn = self.get(transaction_id)
        logger.info(
            f"transaction_update: user_id={self.user_id} transaction_id={txn.id} "
            f"original_amount={txn.amount} original_date={txn.transaction_date} "
            f"original_account_id={txn.account_id} "
            f"original_category_id={txn.category_id}"
        )

        # Resolve everything first so a rejected update leaves the row untouched.
        amount = txn.amount
        if data.amount is not None or data.type is not None:
            magnitude = data.amount if data.amount is not None else abs(txn.amount)
            amount = money.to_signed_amount(magnitude, data.type or txn.type)
        description = txn.description
        if data.description is not None:
            description = _clean_description(data.description)
        account = txn.account
        if data.account_id is not None:
            account = self.accounts.get(data.account_id)
        category = txn.category
        if data.category_id is not None:
            category = self.categories.get(data.category_id)

        txn.amount = amount
        txn.description = description
        if data.transaction_date is not None:
            txn.transaction_date = data.transaction_date
        txn.account = account
        txn.category = category
        self.session.commit()
        self.session.refresh(txn)
        logger.info(f"transaction_updated: user_id={self.user_id} transaction_id={txn.id}")
        return txn

    def soft_delete(self, transaction_id: int) -> None:
        txn = self.get(transaction_id)
        txn.deleted = True
        self.session.commit()
        logger.info(f"transaction_deleted: user_id={self.user_id} transaction_id={txn.id}")

    def _apply_filters(self, stmt: Select, filters: TransactionFilters) -> Select:
        if filters.start_date and filters.end_date:
            validate_range(filters.start_date, filters.end_date)
        if (
            filters.min_amount is not None
            and filters.max_amount is not None
            and filters.min_amount > filters.max_amount
        ):
            raise ValidationError("Minimum amount must not exceed maximum amount")

        if filters.account_id is not None:
            stmt = stmt.where(Transaction.account_id == filters.account_id)
        if filters.category_id is not None:
            stmt = stmt.where(Transaction.category_id == filters.category_id)
        if filters.type == TransactionType.income:
            stmt = stmt.where(Transaction.amount_cents > 0)
        elif filters.type == TransactionType.expense:
            stmt = stmt.where(Transaction.amount_cents < 0)
        if filters.start_date:
            stmt = stmt.where(Transaction.transaction_date >= filters.start_date)
        if filters.end_date:
            stmt = stmt.where(Transaction.transaction_date <= filters.end_date)
        if filters.min_amount is not None:
            stmt = stmt.where(
                Transaction.amount_cents >= money.to_cents(filters.min_amount)
            )
        if filters.max_amount is not None:
            stmt = stmt.where(
                Transaction.amount_cents <= money.to_cents(filters.max_amount)
            )
        if filters.description:
            like = f"%{filters.description.strip().lower()}%"
            stmt = stmt.where(func.lower(Transaction.description).like(like))
        return stmt

    def list(
        self,
        filters: Optional[TransactionFilters] = None,
        page: int = 0,
        size: int = 20,
    ) -> tuple[list[Transaction], int]:
        filters = filters or TransactionFilters()
        if page < 0 or size < 1:
            raise ValidationError("Page must be >= 0 and size must be >= 1")

        total = self.session.execute(
            self._apply_filters(
                _owned_by(select(func.count(Transaction.id)), self.user_id), filters
            )
        ).scalar_one()
        stmt = (
            self._apply_filters(self._select(), filters)
            .order_by(
                Transaction.transaction_date.desc(),
                Transaction.created_at.desc(),
                Transaction.id.desc(),
            )
            .offset(page * size)
            .limit(size)
        )
        return list(self.session.scalars(stmt).unique().all()), int(total or 0)

    def for_account(
        self, account_id: int, page: int = 0, size: int = 20
    ) -> tuple[list[Transaction], int]:
        self.accounts.get(account_id)
        return self.list(TransactionFilters(account_id=account_id), page, size)


class AnalyticsService:
    """Read-only income/expense analytics for one owner.

    Every figure is recomputed from the live transaction rows on each call.
    """

    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def _in_range(self, stmt: Select, start: date, end: date) -> Select:
        return _owned_by(stmt, self.user_id).where(
            Transaction.transaction_date.between(start, end)
        )

    @staticmethod
    def _income_expense_columns():
        cents = Transaction.amount_cents
        income = func.coalesce(func.sum(case((cents > 0, cents), else_=0)), 0)
        expenses = func.coalesce(func.sum(case((cents < 0, cents), else_=0)), 0)
        return income.label("income"), expenses.label("expenses")

    def _totals(self, start: date, end: date) -> tuple[Decimal, Decimal]:
        stmt = self._in_range(select(*self._income_expense_columns()), start, end)
        row = self.session.execute(stmt).one()
        return money.from_cents(row.income), abs(money.from_cents(row.expenses))

    @staticmethod
    def _summary(month: YearMonth, income: Decimal, expenses: Decimal) -> MonthlySummary:
        return MonthlySummary(
            month=month.label,
            total_income=income,
            total_expenses=expenses,
            net_savings=income - expenses,
            savings_rate=money.savings_rate(income, expenses),
        )

    def monthly_summary(self, month: YearMonth) -> MonthlySummary:
        income, expenses = self._totals(month.start, month.end)
        return self._summary(month, income, expenses)

    def spending_by_category(self, start: date, end: date) -> SpendingByCategory:
        validate_range(start, end)
        stmt = (
            self._in_range(
                select(
                    Category.id.label("category_id"),
                    Category.name.label("name"),
                    func.sum(-Transaction.amount_cents).label("amount"),
                    func.count(Transaction.id).label("transaction_count"),
                ),
                start,
                end,
            )
            .join(Category, Category.id == Transaction.category_id)
            .where(Transaction.amount_cents < 0)
            .group_by(Category.id, Category.name)
        )
        rows = [
            (
                row.category_id,
                row.name,
                money.from_cents(row.amount),
                int(row.transaction_count),
            )
            for row in self.session.execute(stmt)
        ]
        rows.sort(key=lambda r: (-r[2], r[1]))
        total = sum((r[2] for r in rows), money.ZERO)
        # Each share is rounded on its own; the list may total 99.99 or 100.01.
        breakdown = [
            CategoryBreakdown(
                category_id=category_id,
                category_name=name,
                amount=amount,
                percentage=money.percentage(amount, total),
                transaction_count=count,
            )
            for category_id, name, amount, count in rows
        ]
        return SpendingByCategory(
            start_date=start,
            end_date=end,
            total_expenses=total,
            categories=breakdown,
        )

    def savings_rate(self, start: date, end: date) -> Decimal:
        validate_range(start, end)
        income, expenses = self._totals(start, end)
        return money.savings_rate(income, expenses)

    def trend_analysis(self, start: date, end: date) -> list[MonthlySummary]:
        """One summary per calendar month in range, empty months zero-filled."""
        validate_range(start, end)
        year = extract("year", Transaction.transaction_date).label("year")
        month = extract("month", Transaction.transaction_date).label("month")
        stmt = self._in_range(
            select(year, month, *self._income_expense_columns()), start, end
        ).group_by(year, month)

        buckets: dict[tuple[int, int], tuple[Decimal, Decimal]] = {}
        for row in self.session.execute(stmt):
            buckets[(int(row.year), int(row.month))] = (
                money.from_cents(row.income),
                abs(money.from_cents(row.expenses)),
            )

        out: list[MonthlySummary] = []
        for ym in iter_months(start, end):
            income, expenses = buckets.get((ym.year, ym.month), (money.ZERO, money.ZERO))
            out.append(self._summary(ym, income, expenses))
        return out
