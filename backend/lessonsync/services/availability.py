from __future__ import annotations

import random
import uuid
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from lessonsync.core.exceptions import ConfigurationError
from lessonsync.schemas.schedule import (
    LOCATIONS,
    VALID_DAYS,
    RecurrenceRule,
    TimeBlock,
    minutes_to_time,
)


@dataclass(frozen=True)
class AvailabilityPolicy:
    min_blocks: int = 2
    max_blocks: int = 4
    # Redraws allowed before a repeated day is accepted.
    distinct_day_attempts: int = 10
    morning_start_hours: tuple[int, int] = (8, 10)
    afternoon_start_hours: tuple[int, int] = (13, 15)
    span_hours: tuple[int, int] = (3, 5)
    start_minutes: tuple[int, ...] = (0, 30)


class AvailabilityGenerator:
    """Synthesizes a teacher's weekly availability windows.

    Distinct days are best-effort: after ``distinct_day_attempts`` redraws a
    repeated day is kept, so two blocks may share a day.
    """

    def __init__(
        self,
        *,
        rng: random.Random,
        policy: AvailabilityPolicy | None = None,
        days: Sequence[str] = VALID_DAYS,
        locations: Sequence[str] = LOCATIONS,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        self.rng = rng
        self.policy = policy or AvailabilityPolicy()
        self.days = tuple(days)
        self.locations = tuple(locations)
        self.id_factory = id_factory or (lambda: str(uuid.uuid4()))
        self._validate()

    def _validate(self) -> None:
        policy = self.policy
        if policy.min_blocks < 1 or policy.max_blocks < policy.min_blocks:
            raise ConfigurationError(
                f"Invalid block count range {policy.min_blocks}-{policy.max_blocks}"
            )
        if policy.distinct_day_attempts < 0:
            raise ConfigurationError("distinct_day_attempts must not be negative")
        if policy.span_hours[0] < 1 or policy.span_hours[1] < policy.span_hours[0]:
            raise ConfigurationError(f"Invalid span range {policy.span_hours}")
        if not self.days:
            raise ConfigurationError("At least one valid day is required")
        if not self.locations:
            raise ConfigurationError("At least one location is required")
        if not policy.start_minutes:
            raise ConfigurationError("At least one start minute is required")

    def _pick_day(self, used_days: set[str]) -> str:
        day = self.rng.choice(self.days)
        attempts = 0
        while day in used_days and attempts < self.policy.distinct_day_attempts:
            day = self.rng.choice(self.days)
            attempts += 1
        return day

    def generate(self) -> list[TimeBlock]:
        policy = self.policy
        block_count = self.rng.randint(policy.min_blocks, policy.max_blocks)
        used_days: set[str] = set()
        blocks: list[TimeBlock] = []

        for _ in range(block_count):
            day = self._pick_day(used_days)
            used_days.add(day)

            if self.rng.random() < 0.5:
                start_hour = self.rng.randint(*policy.morning_start_hours)
            else:
                start_hour = self.rng.randint(*policy.afternoon_start_hours)
            span_hours = self.rng.randint(*policy.span_hours)

            start = start_hour * 60 + self.rng.choice(policy.start_minutes)
            end = start + span_hours * 60

            blocks.append(
                TimeBlock(
                    id=self.id_factory(),
                    day=day,
                    startTime=minutes_to_time(start),
                    endTime=minutes_to_time(end),
                    totalDuration=span_hours * 60,
                    location=self.rng.choice(self.locations),
                    assignedLessons=[],
                    recurring=RecurrenceRule(isRecurring=True, excludeDates=[]),
                )
            )

        return blocks
