from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import create_engine, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from database import Base, build_engine
from errors import NotFoundError
from models import Account, AccountType, Category, TransactionType
from schemas import TransactionIn
from services import CategoryService, TransactionService


def default_count(session) -> int:
    return session.scalar(
        select(func.count(Category.id)).where(Category.is_default.is_(True))
    )


def test_default_category_is_created_lazily_once() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        assert default_count(session) == 0

        first = CategoryService(session).resolve(None)
        second = CategoryService(session).get_or_create_default()

        assert first.id == second.id
        assert first.name == "Uncategorized"
        assert first.is_default is True
        assert default_count(session) == 1


def test_transaction_without_category_uses_default() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        account = Account(user_id=1, name="Main", type=AccountType.checking)
        session.add(account)
        session.commit()

        txns = TransactionService(session, 1)
        for amount in ["10", "20", "30"]:
            txns.create(
                TransactionIn(
                    amount=Decimal(amount),
                    type=TransactionType.expense,
                    description="Coffee",
                    account_id=account.id,
                    transaction_date=date(2025, 1, 2),
                )
            )

        names = session.scalars(select(Category.name)).all()
        assert names == ["Uncategorized"]
        assert default_count(session) == 1


def test_explicit_category_must_exist() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        food = Category(name="Food")
        session.add(food)
        session.commit()

        assert CategoryService(session).resolve(food.id).name == "Food"
        with pytest.raises(NotFoundError):
            CategoryService(session).resolve(food.id + 100)
        # Resolving an explicit id never creates the default.
        assert default_count(session) == 0


def test_store_rejects_a_second_default_category() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        session.add_all(
            [
                Category(name="One", is_default=True),
                Category(name="Two", is_default=True),
            ]
        )
        with pytest.raises(IntegrityError):
            session.commit()


def test_losing_the_default_category_race_returns_the_winner(
    tmp_path, monkeypatch
) -> None:
    engine = build_engine(f"sqlite:///{tmp_path / 'race.db'}")
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)

    with SessionLocal() as winner_session, SessionLocal() as loser_session:
        loser = CategoryService(loser_session)
        real_lookup = loser._find_default
        calls: list[int] = []

        def racing_lookup():
            calls.append(1)
            if len(calls) == 1:
                # The other caller commits between our lookup and our insert.
                CategoryService(winner_session).get_or_create_default()
                return None
            return real_lookup()

        monkeypatch.setattr(loser, "_find_default", racing_lookup)

        category = loser.get_or_create_default()

        winner = CategoryService(winner_session).get_or_create_default()
        assert category.id == winner.id
        assert len(calls) == 2
        assert default_count(loser_session) == 1


def test_categories_are_listed_by_name() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        session.add_all([Category(name="Rent"), Category(name="Groceries")])
        session.commit()
        CategoryService(session).get_or_create_default()

        names = [c.name for c in CategoryService(session).list_all()]
        assert names == ["Groceries", "Rent", "Uncategorized"]


def test_plain_category_with_default_name_is_promoted() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        plain = Category(name="Uncategorized", description="Made by hand")
        session.add(plain)
        session.commit()

        default = CategoryService(session).get_or_create_default()

        assert default.id == plain.id
        assert default.is_default is True
        assert default_count(session) == 1
        assert session.scalar(select(func.count(Category.id))) == 1
