from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import Optional, Sequence

from sqlalchemy import case, desc, func, select, update
from sqlalchemy.orm import Session

from ..db import mark_changed
from ..exceptions import InsufficientPoints, ValidationError
from ..feed import POINTS
from ..models import PointEntry, PointEntryType, UserPoints, utcnow
from ..schemas import PointsSummary
from ..scoring import EARNING_TYPES, SPEND_TYPES, login_bonus_points

log = logging.getLogger(__name__)


def ensure_user_points(session: Session, user_id: str) -> UserPoints:
    points = session.get(UserPoints, user_id)
    if points is None:
        points = UserPoints(user_id=user_id, current_points=0, total_earned_points=0, login_streak=0, max_login_streak=0)
        session.add(points)
        session.flush()
    return points


def _check_amount(amount: int) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise ValidationError("amount", f"must be a positive integer, got {amount!r}")


def _append(
    session: Session,
    user_id: str,
    entry_type: PointEntryType,
    delta: int,
    reason: str,
    item_ref: Optional[str],
    now: Optional[datetime],
    day: Optional[date],
    earned_delta: int,
) -> PointEntry:
    ensure_user_points(session, user_id)
    created_at = now or utcnow()
    entry = PointEntry(
        user_id=user_id,
        type=entry_type,
        delta=delta,
        reason=reason[:255],
        item_ref=item_ref,
        date=(day or created_at.date()).isoformat(),
        created_at=created_at,
    )
    session.add(entry)
    earned = UserPoints.total_earned_points + earned_delta
    session.execute(
        update(UserPoints)
        .where(UserPoints.user_id == user_id)
        .values(
            current_points=UserPoints.current_points + delta,
            total_earned_points=case((earned < 0, 0), else_=earned),
        )
        .execution_options(synchronize_session="fetch")
    )
    session.flush()
    mark_changed(session, user_id, POINTS)
    log.debug("Ledger %s %+d for %s (%s)", entry_type.value, delta, user_id, item_ref)
    return entry


def award(
    session: Session,
    user_id: str,
    entry_type: PointEntryType,
    amount: int,
    reason: str,
    item_ref: Optional[str] = None,
    now: Optional[datetime] = None,
    day: Optional[date] = None,
) -> PointEntry:
    _check_amount(amount)
    earned = amount if entry_type in EARNING_TYPES else 0
    return _append(session, user_id, entry_type, amount, reason, item_ref, now, day, earned)


def reverse(
    session: Session,
    user_id: str,
    entry_type: PointEntryType,
    amount: int,
    reason: str,
    item_ref: Optional[str] = None,
    now: Optional[datetime] = None,
    day: Optional[date] = None,
) -> PointEntry:
    """Undo a prior award; total earned drops by the same amount, floored at zero."""
    _check_amount(amount)
    return _append(session, user_id, entry_type, -amount, reason, item_ref, now, day, -amount)


def spend(
    session: Session,
    user_id: str,
    amount: int,
    reason: str,
    entry_type: PointEntryType = PointEntryType.SHOP_PURCHASE,
    now: Optional[datetime] = None,
    day: Optional[date] = None,
) -> PointEntry:
    _check_amount(amount)
    if entry_type not in SPEND_TYPES:
        raise ValidationError("type", f"{entry_type.value} is not a spend type")
    balance = ensure_user_points(session, user_id)
    if balance.current_points < amount:
        raise InsufficientPoints(required=amount, available=balance.current_points)
    return _append(session, user_id, entry_type, -amount, reason, None, now, day, 0)


def outstanding_award(session: Session, user_id: str, item_ref: str) -> int:
    """Net points currently held for an item: its awards minus its reversals."""
    stmt = select(func.coalesce(func.sum(PointEntry.delta), 0)).where(
        PointEntry.user_id == user_id, PointEntry.item_ref == item_ref
    )
    return max(0, int(session.scalar(stmt) or 0))


def get_balance(session: Session, user_id: str) -> UserPoints:
    points = ensure_user_points(session, user_id)
    session.refresh(points)
    return points


def recompute_balance(session: Session, user_id: str) -> int:
    stmt = select(func.coalesce(func.sum(PointEntry.delta), 0)).where(PointEntry.user_id == user_id)
    return int(session.scalar(stmt) or 0)


def list_entries(session: Session, user_id: str, limit: int = 50) -> Sequence[PointEntry]:
    stmt = (
        select(PointEntry)
        .where(PointEntry.user_id == user_id)
        .order_by(desc(PointEntry.created_at), desc(PointEntry.id))
        .limit(limit)
    )
    return session.scalars(stmt).all()


def points_since(session: Session, user_id: str, since: datetime) -> int:
    stmt = select(func.coalesce(func.sum(PointEntry.delta), 0)).where(
        PointEntry.user_id == user_id, PointEntry.created_at >= since
    )
    return int(session.scalar(stmt) or 0)


def points_on(session: Session, user_id: str, day: date) -> int:
    stmt = select(func.coalesce(func.sum(PointEntry.delta), 0)).where(
        PointEntry.user_id == user_id, PointEntry.date == day.isoformat()
    )
    return int(session.scalar(stmt) or 0)


def summary(session: Session, user_id: str, now: datetime, today: date) -> PointsSummary:
    balance = get_balance(session, user_id)
    return PointsSummary(
        current_points=balance.current_points,
        total_earned_points=balance.total_earned_points,
        today=points_on(session, user_id, today),
        week=points_since(session, user_id, now - timedelta(days=7)),
        month=points_since(session, user_id, now - timedelta(days=30)),
    )


def award_login_bonus(session: Session, user_id: str, today: date, now: Optional[datetime] = None) -> int:
    """Grant the daily login bonus; returns 0 when already granted today."""
    points = ensure_user_points(session, user_id)
    today_key = today.isoformat()
    if points.last_login_bonus_date == today_key:
        return 0
    streak = 1
    if points.last_login_date == (today - timedelta(days=1)).isoformat():
        streak = (points.login_streak or 0) + 1
    bonus = login_bonus_points(streak)
    award(session, user_id, PointEntryType.LOGIN_BONUS, bonus, f"Login bonus ({streak} day streak)", now=now, day=today)
    session.refresh(points)
    points.login_streak = streak
    points.max_login_streak = max(streak, points.max_login_streak or 0)
    points.last_login_date = today_key
    points.last_login_bonus_date = today_key
    session.flush()
    return bonus
