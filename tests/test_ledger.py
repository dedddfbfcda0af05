from decimal import Decimal

import pytest
from sqlalchemy import BigInteger, create_engine, func, select
from sqlalchemy.orm import Session

from database import Base
from models import SavingsEntry, SavingsGoal, User, Wallet, WalletType
from schemas import SavingsEntryIn, SavingsGoalIn, SavingsGoalUpdate
from services import (
    GoalNotFound,
    SavingsGoalService,
    SummaryService,
    WalletNotFound,
)


def make_session() -> Session:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    return Session(engine)


def make_user(session: Session, email: str = "ana@example.com") -> User:
    user = User(email=email, email_verified=True)
    session.add(user)
    session.commit()
    return user


def make_wallet(session: Session, slug: str = "gcash") -> Wallet:
    wallet = Wallet(slug=slug, logo=f"/wallets/{slug}.png", type=WalletType.ewallet)
    session.add(wallet)
    session.commit()
    return wallet


def entry_sum(session: Session, goal_id: int) -> int:
    return session.execute(
        select(func.coalesce(func.sum(SavingsEntry.amount_cents), 0)).where(
            SavingsEntry.savings_goal_id == goal_id
        )
    ).scalar_one()


def test_initial_balance_withdrawal_and_adjustment() -> None:
    with make_session() as session:
        user = make_user(session)
        wallet = make_wallet(session)
        service = SavingsGoalService(session, user.id)

        goal = service.create(
            SavingsGoalIn(wallet_id=wallet.id, initial_amount=Decimal("500"))
        )
        assert goal.name == "Savings"
        assert goal.current_amount_cents == 50_000
        assert [e.note for e in service.entries(goal.id)] == ["Initial balance"]

        service.add_entry(goal.id, SavingsEntryIn(amount=Decimal("-200")))
        goal = service.get(goal.id)
        assert goal.current_amount_cents == 30_000
        assert len(service.entries(goal.id)) == 2
        assert entry_sum(session, goal.id) == 30_000

        before = [(e.id, e.amount_cents) for e in service.entries(goal.id)]
        goal = service.update(goal.id, SavingsGoalUpdate(current_amount=Decimal("1000")))
        assert goal.current_amount_cents == 100_000

        entries = service.entries(goal.id)
        assert len(entries) == 3
        assert entries[0].amount_cents == 70_000
        assert entries[0].note == "Balance adjustment"
        assert [(e.id, e.amount_cents) for e in entries[1:]] == before
        assert entry_sum(session, goal.id) == goal.current_amount_cents


def test_zero_initial_amount_creates_no_entry() -> None:
    with make_session() as session:
        user = make_user(session)
        wallet = make_wallet(session)
        service = SavingsGoalService(session, user.id)

        goal = service.create(SavingsGoalIn(wallet_id=wallet.id, name="  Trip  "))
        assert goal.name == "Trip"
        assert goal.current_amount_cents == 0
        assert service.entries(goal.id) == []


def test_withdrawals_may_drive_balance_negative() -> None:
    with make_session() as session:
        user = make_user(session)
        wallet = make_wallet(session)
        service = SavingsGoalService(session, user.id)
        goal = service.create(
            SavingsGoalIn(wallet_id=wallet.id, initial_amount=Decimal("10"))
        )

        service.add_entry(goal.id, SavingsEntryIn(amount=Decimal("-25.50")))

        goal = service.get(goal.id)
        assert goal.current_amount_cents == -1_550
        assert goal.is_completed is False
        assert entry_sum(session, goal.id) == -1_550


def test_completion_tracks_target_after_every_mutation() -> None:
    with make_session() as session:
        user = make_user(session)
        wallet = make_wallet(session)
        service = SavingsGoalService(session, user.id)

        goal = service.create(
            SavingsGoalIn(
                wallet_id=wallet.id,
                target_amount=Decimal("100"),
                initial_amount=Decimal("40"),
            )
        )
        assert goal.is_completed is False

        service.add_entry(goal.id, SavingsEntryIn(amount=Decimal("60")))
        assert service.get(goal.id).is_completed is True

        service.add_entry(goal.id, SavingsEntryIn(amount=Decimal("-0.01")))
        assert service.get(goal.id).is_completed is False

        goal = service.update(goal.id, SavingsGoalUpdate(target_amount=Decimal("50")))
        assert goal.is_completed is True

        goal = service.update(goal.id, SavingsGoalUpdate(target_amount=None))
        assert goal.target_amount_cents is None
        assert goal.is_completed is False


def test_initial_amount_reaching_target_is_completed() -> None:
    with make_session() as session:
        user = make_user(session)
        wallet = make_wallet(session)
        goal = SavingsGoalService(session, user.id).create(
            SavingsGoalIn(
                wallet_id=wallet.id,
                target_amount=Decimal("100"),
                initial_amount=Decimal("100"),
            )
        )
        assert goal.is_completed is True


def test_zero_target_means_no_target() -> None:
    with make_session() as session:
        user = make_user(session)
        wallet = make_wallet(session)
        service = SavingsGoalService(session, user.id)

        goal = service.create(
            SavingsGoalIn(wallet_id=wallet.id, target_amount=Decimal("0"))
        )
        assert goal.target_amount_cents is None

        service.add_entry(goal.id, SavingsEntryIn(amount=Decimal("5")))
        assert service.get(goal.id).is_completed is False


def test_edit_without_balance_change_adds_no_entry() -> None:
    with make_session() as session:
        user = make_user(session)
        wallet = make_wallet(session)
        service = SavingsGoalService(session, user.id)
        goal = service.create(
            SavingsGoalIn(wallet_id=wallet.id, initial_amount=Decimal("20"))
        )

        goal = service.update(
            goal.id,
            SavingsGoalUpdate(name="Emergency fund", current_amount=Decimal("20")),
        )

        assert goal.name == "Emergency fund"
        assert len(service.entries(goal.id)) == 1


def test_partial_update_leaves_missing_fields_alone() -> None:
    with make_session() as session:
        user = make_user(session)
        wallet = make_wallet(session)
        service = SavingsGoalService(session, user.id)
        goal = service.create(
            SavingsGoalIn(
                wallet_id=wallet.id, name="Laptop", target_amount=Decimal("900")
            )
        )

        goal = service.update(goal.id, SavingsGoalUpdate(current_amount=Decimal("300")))

        assert goal.name == "Laptop"
        assert goal.target_amount_cents == 90_000
        assert goal.current_amount_cents == 30_000


def test_delete_goal_removes_its_entries() -> None:
    with make_session() as session:
        user = make_user(session)
        wallet = make_wallet(session)
        service = SavingsGoalService(session, user.id)
        goal = service.create(
            SavingsGoalIn(wallet_id=wallet.id, initial_amount=Decimal("10"))
        )
        service.add_entry(goal.id, SavingsEntryIn(amount=Decimal("5")))
        goal_id = goal.id

        service.delete(goal_id)

        assert session.get(SavingsGoal, goal_id) is None
        remaining = session.scalars(
            select(SavingsEntry).where(SavingsEntry.savings_goal_id == goal_id)
        ).all()
        assert remaining == []
        with pytest.raises(GoalNotFound):
            service.get(goal_id)


def test_other_users_goals_look_missing() -> None:
    with make_session() as session:
        owner = make_user(session, "owner@example.com")
        intruder = make_user(session, "intruder@example.com")
        wallet = make_wallet(session)
        goal = SavingsGoalService(session, owner.id).create(
            SavingsGoalIn(wallet_id=wallet.id, initial_amount=Decimal("10"))
        )

        other = SavingsGoalService(session, intruder.id)
        with pytest.raises(GoalNotFound, match="Savings goal not found"):
            other.get(goal.id)
        with pytest.raises(GoalNotFound):
            other.add_entry(goal.id, SavingsEntryIn(amount=Decimal("1")))
        with pytest.raises(GoalNotFound):
            other.update(goal.id, SavingsGoalUpdate(current_amount=Decimal("0")))
        with pytest.raises(GoalNotFound):
            other.delete(goal.id)

        assert other.list_all() == []
        assert other.transactions() == []
        assert session.get(SavingsGoal, goal.id).current_amount_cents == 1_000


def test_unknown_or_inactive_wallet_is_rejected() -> None:
    with make_session() as session:
        user = make_user(session)
        wallet = make_wallet(session)
        wallet.is_active = False
        session.commit()
        service = SavingsGoalService(session, user.id)

        with pytest.raises(WalletNotFound):
            service.create(SavingsGoalIn(wallet_id=wallet.id))
        with pytest.raises(WalletNotFound):
            service.create(SavingsGoalIn(wallet_id=9999))


def test_list_all_keeps_five_most_recent_entries_per_goal() -> None:
    with make_session() as session:
        user = make_user(session)
        wallet = make_wallet(session)
        service = SavingsGoalService(session, user.id)
        first = service.create(SavingsGoalIn(wallet_id=wallet.id, name="First"))
        second = service.create(SavingsGoalIn(wallet_id=wallet.id, name="Second"))
        for amount in range(1, 8):
            service.add_entry(first.id, SavingsEntryIn(amount=Decimal(amount)))
        service.add_entry(second.id, SavingsEntryIn(amount=Decimal("3")))

        overviews = service.list_all()

        assert [item.goal.name for item in overviews] == ["First", "Second"]
        assert [e.amount_cents for e in overviews[0].recent_entries] == [
            700,
            600,
            500,
            400,
            300,
        ]
        assert [e.amount_cents for e in overviews[1].recent_entries] == [300]


def test_transactions_span_goals_newest_first_with_limit() -> None:
    with make_session() as session:
        user = make_user(session)
        gcash = make_wallet(session, "gcash")
        bpi = make_wallet(session, "bpi")
        service = SavingsGoalService(session, user.id)
        a = service.create(SavingsGoalIn(wallet_id=gcash.id))
        b = service.create(SavingsGoalIn(wallet_id=bpi.id))
        service.add_entry(a.id, SavingsEntryIn(amount=Decimal("1")))
        service.add_entry(b.id, SavingsEntryIn(amount=Decimal("2")))
        service.add_entry(a.id, SavingsEntryIn(amount=Decimal("3")))

        entries = service.transactions(limit=2)

        assert [e.amount_cents for e in entries] == [300, 200]
        assert entries[1].savings_goal.wallet.slug == "bpi"


def test_zero_amount_entry_is_rejected() -> None:
    with pytest.raises(ValueError):
        SavingsEntryIn(amount=Decimal("0"))


def test_summary_totals() -> None:
    with make_session() as session:
        user = make_user(session)
        wallet = make_wallet(session)
        service = SavingsGoalService(session, user.id)
        service.create(
            SavingsGoalIn(
                wallet_id=wallet.id,
                target_amount=Decimal("100"),
                initial_amount=Decimal("150"),
            )
        )
        service.create(
            SavingsGoalIn(
                wallet_id=wallet.id,
                target_amount=Decimal("200"),
                initial_amount=Decimal("50"),
            )
        )
        service.create(SavingsGoalIn(wallet_id=wallet.id))

        stats = SummaryService(session, user.id).summary()

        assert stats == {
            "total_saved_cents": 20_000,
            "total_target_cents": 30_000,
            "active_goals": 2,
            "completed_goals": 1,
            "goals_count": 3,
        }


def test_summary_for_user_without_goals() -> None:
    with make_session() as session:
        user = make_user(session)
        stats = SummaryService(session, user.id).summary()
        assert stats["goals_count"] == 0
        assert stats["total_saved_cents"] == 0


def test_concurrent_entries_both_reach_the_balance(tmp_path) -> None:
    engine = create_engine(f"sqlite:///{tmp_path / 'savings.db'}")
    Base.metadata.create_all(engine)
    with Session(engine) as session:
        user = make_user(session)
        wallet = make_wallet(session)
        goal_id = SavingsGoalService(session, user.id).create(
            SavingsGoalIn(wallet_id=wallet.id)
        ).id
        user_id = user.id

    with Session(engine) as first, Session(engine) as second:
        first_service = SavingsGoalService(first, user_id)
        second_service = SavingsGoalService(second, user_id)
        # both writers see the same starting balance
        assert first_service.get(goal_id).current_amount_cents == 0
        assert second_service.get(goal_id).current_amount_cents == 0

        first_service.add_entry(goal_id, SavingsEntryIn(amount=Decimal("5")))
        second_service.add_entry(goal_id, SavingsEntryIn(amount=Decimal("7")))

    with Session(engine) as session:
        goal = session.get(SavingsGoal, goal_id)
        assert goal.current_amount_cents == 1_200
        assert entry_sum(session, goal_id) == goal.current_amount_cents
    engine.dispose()


def test_amounts_beyond_32_bit_cents_are_stored() -> None:
    for column in (
        SavingsGoal.__table__.c.current_amount_cents,
        SavingsGoal.__table__.c.target_amount_cents,
        SavingsEntry.__table__.c.amount_cents,
    ):
        assert isinstance(column.type, BigInteger)

    with make_session() as session:
        user = make_user(session)
        wallet = make_wallet(session)
        service = SavingsGoalService(session, user.id)

        goal = service.create(
            SavingsGoalIn(
                wallet_id=wallet.id,
                initial_amount=Decimal("30000000"),
                target_amount=Decimal("50000000.50"),
            )
        )
        service.add_entry(goal.id, SavingsEntryIn(amount=Decimal("25000000")))

        goal = service.get(goal.id)
        assert goal.current_amount_cents == 5_500_000_000
        assert goal.is_completed is True
        assert entry_sum(session, goal.id) == 5_500_000_000
