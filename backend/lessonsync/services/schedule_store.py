from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from lessonsync.core.exceptions import ConfigurationError
from lessonsync.db.base import Base
from lessonsync.models.student import Student
from lessonsync.models.teacher import Teacher

logger = logging.getLogger(__name__)


def chunked(items: list, size: int) -> Iterable[list]:
    if size < 1:
        raise ConfigurationError(f"Batch size must be at least 1 (got {size})")
    for start in range(0, len(items), size):
        yield items[start:start + size]


class ScheduleStore:
    """Tenant-scoped access to the teacher and student collections.

    Writes always replace a whole field of a row; each batch is committed on
    its own, so a failure mid-phase leaves earlier batches in place.
    """

    def __init__(self, session: Session, *, tenant_id: str) -> None:
        self.session = session
        self.tenant_id = tenant_id

    def active_teachers(self) -> list[Teacher]:
        return list(
            self.session.execute(
                select(Teacher)
                .where(Teacher.tenant_id == self.tenant_id, Teacher.is_active.is_(True))
                .order_by(Teacher.id)
            ).scalars()
        )

    def active_students(self) -> list[Student]:
        return list(
            self.session.execute(
                select(Student)
                .where(Student.tenant_id == self.tenant_id, Student.is_active.is_(True))
                .order_by(Student.id)
            ).scalars()
        )

    def students_by_ids(self, student_ids: Iterable[str]) -> dict[str, Student]:
        ids = list(dict.fromkeys(student_ids))
        if not ids:
            return {}
        rows = self.session.execute(
            select(Student).where(Student.tenant_id == self.tenant_id, Student.id.in_(ids))
        ).scalars()
        return {row.id: row for row in rows}

    def replace_field(
        self,
        model: type[Base],
        field: str,
        values: Mapping[str, object],
        *,
        batch_size: int,
    ) -> int:
        """Replace ``field`` on every row keyed in ``values``; returns rows written."""
        items = list(values.items())
        written = 0
        for batch in chunked(items, batch_size):
            now = datetime.now(timezone.utc)
            self.session.execute(
                update(model),
                [{"id": row_id, field: value, "updated_at": now} for row_id, value in batch],
            )
            self.session.commit()
            written += len(batch)
            logger.debug("Replaced %s.%s on %d row(s)", model.__tablename__, field, len(batch))
        return written
