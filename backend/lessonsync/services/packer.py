from __future__ import annotations

import logging
import math
import random
import uuid
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

from lessonsync.schemas.schedule import (
    TOLERANCE_MINUTES,
    OverflowPolicy,
    TimeBlock,
    lesson_within_block,
    minutes_to_time,
)

logger = logging.getLogger(__name__)

# (duration minutes, cumulative probability upper bound)
DURATION_DISTRIBUTION: tuple[tuple[int, float], ...] = ((30, 0.5), (45, 0.9), (60, 1.0))
OVERFLOW_DURATION_MINUTES = 30


def round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


@dataclass(frozen=True)
class StudentRef:
    id: str
    name: str


@dataclass(frozen=True)
class Placement:
    teacher_id: str
    student_id: str
    student_name: str
    block_id: str
    day: str
    start_minute: int
    end_minute: int
    duration: int
    location: str
    lesson_id: str
    schedule_slot_id: str
    overflow: bool = False

    @property
    def start_time(self) -> str:
        return minutes_to_time(self.start_minute)

    @property
    def end_time(self) -> str:
        return minutes_to_time(self.end_minute)


@dataclass
class BlockCursor:
    block: TimeBlock
    start: int
    end: int
    cursor: int
    placements: list[Placement] = field(default_factory=list)

    @classmethod
    def for_block(cls, block: TimeBlock) -> "BlockCursor":
        return cls(block=block, start=block.start_minute, end=block.end_minute, cursor=block.start_minute)

    @property
    def capacity(self) -> int:
        return self.end - self.start

    @property
    def remaining(self) -> int:
        return self.end - self.cursor


@dataclass
class PackingResult:
    teacher_id: str
    placements_by_block: dict[str, list[Placement]]
    proportional_count: int = 0
    overflow_count: int = 0
    unplaced: list[StudentRef] = field(default_factory=list)

    @property
    def placements(self) -> list[Placement]:
        return [placement for items in self.placements_by_block.values() for placement in items]

    @property
    def assigned_count(self) -> int:
        return self.proportional_count + self.overflow_count


class CapacityPacker:
    """Places a teacher's students back-to-back inside the teacher's blocks.

    Two stages: a proportional pass that gives each block a share of the
    students matching its share of capacity, then an overflow pass that puts
    the leftovers into whichever block has the most room left, at a fixed
    30 minutes each. Under ``OverflowPolicy.lenient`` the overflow pass may run
    past ``block end + tolerance``; under ``bounded`` it stops there and the
    students left over are returned in ``PackingResult.unplaced``.
    """

    def __init__(
        self,
        *,
        rng: random.Random,
        tolerance_minutes: int = TOLERANCE_MINUTES,
        overflow_policy: OverflowPolicy = OverflowPolicy.lenient,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        self.rng = rng
        self.tolerance_minutes = tolerance_minutes
        self.overflow_policy = OverflowPolicy(overflow_policy)
        self.id_factory = id_factory or (lambda: str(uuid.uuid4()))

    def pick_duration(self) -> int:
        draw = self.rng.random()
        for duration, upper_bound in DURATION_DISTRIBUTION:
            if draw < upper_bound:
                return duration
        return DURATION_DISTRIBUTION[-1][0]

    def pack(
        self,
        teacher_id: str,
        blocks: Sequence[TimeBlock],
        students: Sequence[StudentRef],
    ) -> PackingResult:
        cursors = [BlockCursor.for_block(block) for block in blocks]
        result = PackingResult(
            teacher_id=teacher_id,
            placements_by_block={slot.block.id: slot.placements for slot in cursors},
        )

        next_index = self._proportional_pass(teacher_id, cursors, students, result)
        self._resolve_overflow(teacher_id, cursors, students[next_index:], result)

        logger.debug(
            "Teacher %s: %d placed proportionally, %d overflow, %d unplaced",
            teacher_id,
            result.proportional_count,
            result.overflow_count,
            len(result.unplaced),
        )
        return result

    def block_targets(self, cursors: Sequence[BlockCursor], student_count: int) -> list[int]:
        total_capacity = sum(slot.capacity for slot in cursors)
        if total_capacity <= 0:
            return [0 for _ in cursors]
        return [round_half_up(slot.capacity / total_capacity * student_count) for slot in cursors]

    def _place(
        self,
        teacher_id: str,
        slot: BlockCursor,
        student: StudentRef,
        duration: int,
        *,
        overflow: bool,
    ) -> Placement:
        placement = Placement(
            teacher_id=teacher_id,
            student_id=student.id,
            student_name=student.name,
            block_id=slot.block.id,
            day=slot.block.day,
            start_minute=slot.cursor,
            end_minute=slot.cursor + duration,
            duration=duration,
            location=slot.block.location,
            lesson_id=self.id_factory(),
            schedule_slot_id=self.id_factory(),
            overflow=overflow,
        )
        slot.placements.append(placement)
        slot.cursor += duration
        return placement

    def _proportional_pass(
        self,
        teacher_id: str,
        cursors: Sequence[BlockCursor],
        students: Sequence[StudentRef],
        result: PackingResult,
    ) -> int:
        index = 0
        for slot, target in zip(cursors, self.block_targets(cursors, len(students))):
            placed_here = 0
            while placed_here < target and index < len(students):
                duration = self.pick_duration()
                if not lesson_within_block(
                    slot.cursor, duration, slot.start, slot.end, tolerance=self.tolerance_minutes
                ):
                    # The rest of this block's share is abandoned, not retried shorter.
                    break
                self._place(teacher_id, slot, students[index], duration, overflow=False)
                result.proportional_count += 1
                placed_here += 1
                index += 1
        return index

    def _resolve_overflow(
        self,
        teacher_id: str,
        cursors: Sequence[BlockCursor],
        remaining: Sequence[StudentRef],
        result: PackingResult,
    ) -> None:
        if not remaining:
            return
        if not cursors:
            result.unplaced.extend(remaining)
            return

        for position, student in enumerate(remaining):
            best = cursors[0]
            for slot in cursors:
                if slot.remaining > best.remaining:
                    best = slot

            if self.overflow_policy is OverflowPolicy.bounded and not lesson_within_block(
                best.cursor,
                OVERFLOW_DURATION_MINUTES,
                best.start,
                best.end,
                tolerance=self.tolerance_minutes,
            ):
                result.unplaced.extend(remaining[position:])
                return

            self._place(teacher_id, best, student, OVERFLOW_DURATION_MINUTES, overflow=True)
            result.overflow_count += 1
