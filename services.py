from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from sqlalchemy import case, false, func, select, update
from sqlalchemy.orm import Session, contains_eager, joinedload

from models import SavingsEntry, SavingsGoal, SupportHeart, Wallet
from schemas import SavingsEntryIn, SavingsGoalIn, SavingsGoalUpdate


logger = logging.getLogger(__name__)

DEFAULT_GOAL_NAME = "Savings"
INITIAL_BALANCE_NOTE = "Initial balance"
BALANCE_ADJUSTMENT_NOTE = "Balance adjustment"
RECENT_ENTRIES_PER_GOAL = 5


class GoalNotFound(ValueError):
    pass


class WalletNotFound(ValueError):
    pass


def to_cents(amount: Decimal) -> int:
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def cents_to_amount(cents: Optional[int]) -> Optional[float]:
    if cents is None:
        return None
    return cents / 100


def goal_is_completed(target_cents: Optional[int], current_cents: int) -> bool:
    # a zero target is treated as "no target"
    return bool(target_cents) and current_cents >= target_cents


@dataclass
class GoalOverview:
    goal: SavingsGoal
    recent_entries: list[SavingsEntry]


class WalletService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def list_active(self) -> list[Wallet]:
        stmt = select(Wallet).where(Wallet.is_active.is_(True)).order_by(Wallet.slug)
        return self.session.scalars(stmt).all()

    def get(self, wallet_id: int) -> Wallet:
        wallet = self.session.get(Wallet, wallet_id)
        if not wallet or not wallet.is_active:
            raise WalletNotFound("Wallet not found")
        return wallet


class SavingsGoalService:
    """Goal ledger for a single user.

    Every lookup is scoped to ``user_id``; goals owned by someone else are
    reported exactly like missing ones.
    """

    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def _goal_stmt(self, goal_id: int):
        return (
            select(SavingsGoal)
            .options(joinedload(SavingsGoal.wallet))
            .where(SavingsGoal.id == goal_id, SavingsGoal.user_id == self.user_id)
        )

    def get(self, goal_id: int) -> SavingsGoal:
        goal = self.session.scalar(self._goal_stmt(goal_id))
        if not goal:
            raise GoalNotFound("Savings goal not found")
        return goal

    def entries(self, goal_id: int) -> list[SavingsEntry]:
        goal = self.get(goal_id)
        stmt = (
            select(SavingsEntry)
            .where(SavingsEntry.savings_goal_id == goal.id)
            .order_by(SavingsEntry.created_at.desc(), SavingsEntry.id.desc())
        )
        return self.session.scalars(stmt).all()

    def list_all(self) -> list[GoalOverview]:
        stmt = (
            select(SavingsGoal)
            .options(joinedload(SavingsGoal.wallet))
            .where(SavingsGoal.user_id == self.user_id)
            .order_by(SavingsGoal.created_at.asc(), SavingsGoal.id.asc())
        )
        goals = self.session.scalars(stmt).all()
        recent = self._recent_entries([goal.id for goal in goals])
        return [GoalOverview(goal, recent.get(goal.id, [])) for goal in goals]

    def _recent_entries(
        self, goal_ids: list[int], per_goal: int = RECENT_ENTRIES_PER_GOAL
    ) -> dict[int, list[SavingsEntry]]:
        if not goal_ids:
            return {}
        rank = (
            func.row_number()
            .over(
                partition_by=SavingsEntry.savings_goal_id,
                order_by=(SavingsEntry.created_at.desc(), SavingsEntry.id.desc()),
            )
            .label("rank")
        )
        ranked = (
            select(SavingsEntry.id, rank)
            .where(SavingsEntry.savings_goal_id.in_(goal_ids))
            .subquery()
        )
        stmt = (
            select(SavingsEntry)
            .join(ranked, ranked.c.id == SavingsEntry.id)
            .where(ranked.c.rank <= per_goal)
            .order_by(SavingsEntry.created_at.desc(), SavingsEntry.id.desc())
        )
        grouped: dict[int, list[SavingsEntry]] = {}
        for entry in self.session.scalars(stmt).all():
            grouped.setdefault(entry.savings_goal_id, []).append(entry)
        return grouped

    def create(self, data: SavingsGoalIn) -> SavingsGoal:
        WalletService(self.session).get(data.wallet_id)

        initial_cents = to_cents(data.initial_amount) if data.initial_amount else 0
        target_cents = to_cents(data.target_amount) if data.target_amount else None
        goal = SavingsGoal(
            user_id=self.user_id,
            wallet_id=data.wallet_id,
            name=(data.name or "").strip() or DEFAULT_GOAL_NAME,
            target_amount_cents=target_cents,
            current_amount_cents=initial_cents,
            is_completed=goal_is_completed(target_cents, initial_cents),
        )
        self.session.add(goal)
        self.session.flush()
        if initial_cents > 0:
            self.session.add(
                SavingsEntry(
                    savings_goal_id=goal.id,
                    amount_cents=initial_cents,
                    note=INITIAL_BALANCE_NOTE,
                )
            )
        self.session.commit()
        logger.info(
            f"goal_created: user_id={self.user_id} goal_id={goal.id} "
            f"initial_cents={initial_cents}"
        )
        return self.get(goal.id)

    def add_entry(self, goal_id: int, data: SavingsEntryIn) -> SavingsEntry:
        goal = self.get(goal_id)
        amount_cents = to_cents(data.amount)
        if amount_cents == 0:
            raise ValueError("Amount must not be zero")

        entry = SavingsEntry(
            savings_goal_id=goal.id,
            amount_cents=amount_cents,
            note=(data.note or "").strip() or None,
        )
        self.session.add(entry)
        # increment in SQL so concurrent entries cannot overwrite each other
        new_balance = SavingsGoal.current_amount_cents + amount_cents
        self.session.execute(
            update(SavingsGoal)
            .where(SavingsGoal.id == goal.id)
            .values(
                current_amount_cents=new_balance,
                is_completed=case(
                    (SavingsGoal.target_amount_cents.is_(None), false()),
                    (SavingsGoal.target_amount_cents == 0, false()),
                    else_=new_balance >= SavingsGoal.target_amount_cents,
                ),
            )
            .execution_options(synchronize_session=False)
        )
        self.session.commit()
        self.session.refresh(entry)
        self.session.refresh(goal)
        logger.info(
            f"entry_added: user_id={self.user_id} goal_id={goal.id} "
            f"amount_cents={amount_cents} balance_cents={goal.current_amount_cents}"
        )
        return entry

    def update(self, goal_id: int, data: SavingsGoalUpdate) -> SavingsGoal:
        goal = self.session.scalar(self._goal_stmt(goal_id).with_for_update(of=SavingsGoal))
        if not goal:
            raise GoalNotFound("Savings goal not found")

        fields = data.model_fields_set
        if "name" in fields and data.name is not None:
            goal.name = data.name.strip() or DEFAULT_GOAL_NAME
        if "target_amount" in fields:
            goal.target_amount_cents = (
                to_cents(data.target_amount) if data.target_amount else None
            )

        difference = 0
        if "current_amount" in fields and data.current_amount is not None:
            new_cents = to_cents(data.current_amount)
            difference = new_cents - goal.current_amount_cents
            if difference:
                goal.current_amount_cents = new_cents
                self.session.add(
                    SavingsEntry(
                        savings_goal_id=goal.id,
                        amount_cents=difference,
                        note=BALANCE_ADJUSTMENT_NOTE,
                    )
                )

        goal.is_completed = goal_is_completed(
            goal.target_amount_cents, goal.current_amount_cents
        )
        self.session.commit()
        self.session.refresh(goal)
        if difference:
            logger.info(
                f"balance_adjusted: user_id={self.user_id} goal_id={goal.id} "
                f"difference_cents={difference}"
            )
        return goal

    def delete(self, goal_id: int) -> None:
        goal = self.get(goal_id)
        self.session.delete(goal)
        self.session.commit()
        logger.info(f"goal_deleted: user_id={self.user_id} goal_id={goal_id}")

    def transactions(self, limit: int = 20) -> list[SavingsEntry]:
        limit = min(max(limit, 1), 100)
        stmt = (
            select(SavingsEntry)
            .join(SavingsEntry.savings_goal)
            .options(
                contains_eager(SavingsEntry.savings_goal).joinedload(
                    SavingsGoal.wallet
                )
            )
            .where(SavingsGoal.user_id == self.user_id)
            .order_by(SavingsEntry.created_at.desc(), SavingsEntry.id.desc())
            .limit(limit)
        )
        return self.session.scalars(stmt).all()


class SummaryService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def summary(self) -> dict[str, int]:
        completed = func.coalesce(
            func.sum(case((SavingsGoal.is_completed.is_(True), 1), else_=0)), 0
        )
        row = self.session.execute(
            select(
                func.count(SavingsGoal.id),
                func.coalesce(func.sum(SavingsGoal.current_amount_cents), 0),
                func.coalesce(func.sum(SavingsGoal.target_amount_cents), 0),
                completed,
            ).where(SavingsGoal.user_id == self.user_id)
        ).one()
        goals_count, saved, target, completed_count = (int(value) for value in row)
        return {
            "total_saved_cents": saved,
            "total_target_cents": target,
            "active_goals": goals_count - completed_count,
            "completed_goals": completed_count,
            "goals_count": goals_count,
        }


class SupportService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def count(self) -> int:
        return int(
            self.session.execute(select(func.count(SupportHeart.id))).scalar_one() or 0
        )

    def has_hearted(self, user_id: int) -> bool:
        stmt = select(SupportHeart.id).where(SupportHeart.user_id == user_id)
        return self.session.scalar(stmt) is not None

    def toggle(self, user_id: int) -> bool:
        """Add or remove the user's heart and return the new state."""
        existing = self.session.scalar(
            select(SupportHeart).where(SupportHeart.user_id == user_id)
        )
        if existing:
            self.session.delete(existing)
        else:
            self.session.add(SupportHeart(user_id=user_id))
        self.session.commit()
        return existing is None
