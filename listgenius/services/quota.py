"""
Generation Quota Gate
Per-user, per-calendar-month generation counter with atomic reservation
"""
import logging
from datetime import datetime, timezone
from typing import Callable

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from ..config import FREE_GENERATIONS_PER_MONTH, PAID_PLANS, PAID_SOFT_CAP_PER_MONTH, PLAN_LIMITS
from ..db import QuotaRecord, utcnow
from ..errors import QuotaExceeded, StorageUnavailable
from ..models import QuotaUsage, Reservation

logger = logging.getLogger(__name__)


def get_month_key(now: datetime) -> str:
    """YYYY-MM in UTC; a new key means a fresh counter"""
    if now.tzinfo is not None:
        now = now.astimezone(timezone.utc)
    return now.strftime("%Y-%m")


def cap_for_plan(plan: str) -> int:
    return PLAN_LIMITS.get(plan, FREE_GENERATIONS_PER_MONTH)


def display_limit(plan: str):
    return "unlimited" if plan in PAID_PLANS else cap_for_plan(plan)


def limit_message(plan: str) -> str:
    if plan in PAID_PLANS:
        return f"Monthly safety limit reached ({PAID_SOFT_CAP_PER_MONTH}). Contact support."
    return f"Free plan limit reached ({FREE_GENERATIONS_PER_MONTH}/month). Upgrade to Pro for more generations."


class QuotaGate:
    """
    Answers "may this user consume N more generations this month" and consumes them

    The plan is looked up through the identity capability on every call so an
    upgrade mid-run applies from the next reservation.
    """

    def __init__(self, sessions: async_sessionmaker, identity, clock: Callable[[], datetime] = utcnow):
        self.sessions = sessions
        self.identity = identity
        self.clock = clock

    async def get_current_usage(self, user_id: str) -> QuotaUsage:
        user = await self.identity.get_user(user_id)
        key = get_month_key(self.clock())

        try:
            async with self.sessions() as session:
                record = await session.get(QuotaRecord, (user_id, key))
        except SQLAlchemyError as e:
            logger.error(f"Failed to read quota for {user_id}: {e}")
            raise StorageUnavailable("Failed to check generation quota")

        used = record.used_count if record else 0
        cap = cap_for_plan(user.plan)

        return QuotaUsage(
            used=used,
            limit=display_limit(user.plan),
            plan=user.plan,
            remaining=max(0, cap - used),
        )

    async def ensure_available(self, user_id: str, count: int) -> QuotaUsage:
        """
        Batch acceptance check; nothing is consumed
        Raises:
            QuotaExceeded: If `count` units do not fit in the remaining balance
        """
        usage = await self.get_current_usage(user_id)

        if usage.remaining <= 0:
            raise QuotaExceeded(
                "No remaining generations available. Please wait for your quota to reset or upgrade your plan.",
                used=usage.used,
                limit=usage.limit,
                remaining=0,
            )

        if count > usage.remaining:
            error = QuotaExceeded(
                f"You can only process {usage.remaining} rows. You have {count} rows selected. "
                "Please select fewer rows.",
                used=usage.used,
                limit=usage.limit,
                remaining=usage.remaining,
            )
            error.details["maxAllowed"] = usage.remaining
            raise error

        return usage

    async def reserve(self, user_id: str, count: int = 1) -> Reservation:
        """
        Atomically consume `count` units
        Returns:
            Reservation with the new used count and remaining balance
        Raises:
            QuotaExceeded: If used + count would exceed the plan cap
            StorageUnavailable: If the store failed; the reservation is not confirmed
        """
        if count < 1:
            raise ValueError("count must be at least 1")

        user = await self.identity.get_user(user_id)
        cap = cap_for_plan(user.plan)
        key = get_month_key(self.clock())

        for attempt in range(2):
            try:
                used = await self._reserve_once(user_id, user.plan, key, count, cap)
                break
            except IntegrityError:
                # Another request created this month's record first
                if attempt:
                    raise StorageUnavailable("Failed to record generation usage")
                logger.info(f"Quota record for {user_id}/{key} created concurrently, retrying")
            except SQLAlchemyError as e:
                logger.error(f"Quota reservation failed for {user_id}: {e}")
                raise StorageUnavailable("Failed to record generation usage")

        logger.info(f"Reserved {count} generation(s) for {user_id} ({used}/{cap} in {key})")
        return Reservation(used=used, remaining=cap - used)

    async def _reserve_once(self, user_id: str, plan: str, key: str, count: int, cap: int) -> int:
        async with self.sessions() as session:
            async with session.begin():
                result = await session.execute(
                    update(QuotaRecord)
                    .where(
                        QuotaRecord.user_id == user_id,
                        QuotaRecord.month_key == key,
                        QuotaRecord.used_count + count <= cap,
                    )
                    .values(
                        used_count=QuotaRecord.used_count + count,
                        plan_tier=plan,
                        updated_at=utcnow(),
                    )
                    .execution_options(synchronize_session=False)
                )

                if result.rowcount == 1:
                    return (await session.execute(
                        select(QuotaRecord.used_count).where(
                            QuotaRecord.user_id == user_id,
                            QuotaRecord.month_key == key,
                        )
                    )).scalar_one()

                record = await session.get(QuotaRecord, (user_id, key))
                if record is not None or count > cap:
                    used = record.used_count if record else 0
                    logger.warning(f"Quota exceeded for {user_id}: {used}+{count} > {cap}")
                    raise QuotaExceeded(
                        limit_message(plan),
                        used=used,
                        limit=display_limit(plan),
                        remaining=max(0, cap - used),
                    )

                session.add(QuotaRecord(user_id=user_id, month_key=key, used_count=count, plan_tier=plan))
                await session.flush()
                return count
