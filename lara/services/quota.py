"""Monthly AI usage budget per teacher."""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import update

from lara.db import AiUsageLog, Database, Teacher
from lara.models import QuotaStatus, utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TierConfig:
    id: str
    name: str
    monthly_ai_calls: int
    max_students_per_session: int
    batch_generation_limit: int


TIER_CONFIGS: dict[str, TierConfig] = {
    "starter": TierConfig("starter", "Starter", 200, 35, 10),
    "classroom": TierConfig("classroom", "Classroom", 800, 35, 25),
    "multi_class": TierConfig("multi_class", "Multi-Class", 2400, 35, 35),
}


def tier_config(tier: Optional[str]) -> TierConfig:
    return TIER_CONFIGS.get(tier or "", TIER_CONFIGS["starter"])


def is_reset_due(reset_at: datetime, now: datetime) -> bool:
    """Usage resets on calendar month boundaries, not on a rolling window."""
    return reset_at.month != now.month or reset_at.year != now.year


class QuotaGuard:
    """Checks and records teacher AI usage against the tier limit.

    ``consume`` does not re-check the limit. Callers gate on ``check`` first,
    which leaves a window where concurrent check/consume pairs for the same
    teacher can overshoot the limit.
    """

    def __init__(self, database: Database, model: str):
        self.database = database
        self.model = model

    async def check(self, teacher_id: str, now: Optional[datetime] = None) -> QuotaStatus:
        now = now or utcnow()
        async with self.database.session() as db:
            teacher = await db.get(Teacher, teacher_id)
            if teacher is None:
                return QuotaStatus(allowed=False, used=0, limit=0, remaining=0)

            limit = tier_config(teacher.tier).monthly_ai_calls
            if is_reset_due(teacher.ai_calls_reset, now):
                teacher.ai_calls_used = 0
                teacher.ai_calls_reset = now
                await db.commit()
                logger.info("Reset monthly AI usage for teacher %s", teacher_id)
                return QuotaStatus(allowed=True, used=0, limit=limit, remaining=limit)

            remaining = limit - teacher.ai_calls_used
            return QuotaStatus(
                allowed=remaining > 0,
                used=teacher.ai_calls_used,
                limit=limit,
                remaining=max(0, remaining),
            )

    async def consume(
        self,
        teacher_id: str,
        operation: str,
        count: int = 1,
        task_id: Optional[str] = None,
        session_id: Optional[str] = None,
        validation_warnings: Optional[list[str]] = None,
    ) -> None:
        """Increment usage and append an audit record in one transaction."""
        async with self.database.session() as db:
            async with db.begin():
                db.add(
                    AiUsageLog(
                        id=str(uuid.uuid4()),
                        teacher_id=teacher_id,
                        task_id=task_id,
                        session_id=session_id,
                        operation=operation,
                        student_count=count,
                        model=self.model,
                        validation_warnings=list(validation_warnings or []),
                    )
                )
                await db.execute(
                    update(Teacher)
                    .where(Teacher.id == teacher_id)
                    .values(ai_calls_used=Teacher.ai_calls_used + count)
                )

    async def reset_date(self, teacher_id: str) -> Optional[datetime]:
        async with self.database.session() as db:
            teacher = await db.get(Teacher, teacher_id)
            return teacher.ai_calls_reset if teacher else None
