from __future__ import annotations

import re
from datetime import date, datetime, timezone
from enum import Enum
from typing import Annotated

from pydantic import AfterValidator, BaseModel, Field, field_validator, model_validator

# Sunday-to-Thursday teaching week.
VALID_DAYS: tuple[str, ...] = ("Sunday", "Monday", "Tuesday", "Wednesday", "Thursday")

LOCATIONS: tuple[str, ...] = (
    "Concert Hall",
    "Chamber Studio 1",
    "Chamber Studio 2",
    "Rehearsal Room 1",
    "Rehearsal Room 2",
    "Computer Lab",
    *(f"Room {index}" for index in range(1, 21)),
    "Theory Room A",
    "Theory Room B",
)

# Slack permitted when checking whether a lesson fits inside its block.
TOLERANCE_MINUTES = 15

TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")
# Lesson times keep counting past midnight ("24:15") when overflow runs late.
LESSON_TIME_PATTERN = re.compile(r"^\d{2,3}:[0-5]\d$")


class OverflowPolicy(str, Enum):
    lenient = "lenient"
    bounded = "bounded"


def parse_time_to_minutes(value: str) -> int:
    if not TIME_PATTERN.match(value):
        raise ValueError("Time must be in HH:MM 24-hour format")
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)


def parse_lesson_time_to_minutes(value: str) -> int:
    if not LESSON_TIME_PATTERN.match(value):
        raise ValueError("Lesson time must be in HH:MM format")
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)


def minutes_to_time(value: int) -> str:
    hours = value // 60
    minutes = value % 60
    return f"{hours:02d}:{minutes:02d}"


def lesson_within_block(
    lesson_start: int,
    duration: int,
    block_start: int,
    block_end: int,
    *,
    tolerance: int = TOLERANCE_MINUTES,
) -> bool:
    return lesson_start >= block_start and lesson_start + duration <= block_end + tolerance


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _validate_clock_time(value: str) -> str:
    value = value.strip()
    parse_time_to_minutes(value)
    return value


ClockTime = Annotated[str, AfterValidator(_validate_clock_time)]


def _validate_lesson_time(value: str) -> str:
    value = value.strip()
    parse_lesson_time_to_minutes(value)
    return value


LessonTime = Annotated[str, AfterValidator(_validate_lesson_time)]


class RecurrenceRule(BaseModel):
    isRecurring: bool = True
    excludeDates: list[date] = Field(default_factory=list)


class LessonRef(BaseModel):
    id: str = Field(min_length=1, max_length=36)
    studentId: str = Field(min_length=1, max_length=36)
    studentName: str = Field(min_length=1, max_length=200)
    lessonStartTime: LessonTime
    lessonEndTime: LessonTime
    duration: int = Field(ge=1, le=24 * 60)
    notes: str | None = None
    isActive: bool = True
    isRecurring: bool = True
    startDate: date
    endDate: date | None = None
    createdAt: datetime = Field(default_factory=utcnow)
    updatedAt: datetime = Field(default_factory=utcnow)


class TimeBlock(BaseModel):
    id: str = Field(min_length=1, max_length=36)
    day: str
    startTime: ClockTime
    endTime: ClockTime
    totalDuration: int = Field(ge=0)
    location: str = Field(min_length=1, max_length=200)
    notes: str | None = None
    isActive: bool = True
    assignedLessons: list[LessonRef] = Field(default_factory=list)
    recurring: RecurrenceRule = Field(default_factory=RecurrenceRule)
    createdAt: datetime = Field(default_factory=utcnow)
    updatedAt: datetime = Field(default_factory=utcnow)

    @field_validator("day")
    @classmethod
    def validate_day(cls, value: str) -> str:
        value = value.strip()
        if value not in VALID_DAYS:
            raise ValueError(f"Invalid day: {value}")
        return value

    @model_validator(mode="after")
    def validate_range(self) -> "TimeBlock":
        if self.end_minute < self.start_minute:
            raise ValueError("Block endTime must not be before startTime")
        return self

    @property
    def start_minute(self) -> int:
        return parse_time_to_minutes(self.startTime)

    @property
    def end_minute(self) -> int:
        return parse_time_to_minutes(self.endTime)

    @property
    def capacity_minutes(self) -> int:
        return self.end_minute - self.start_minute


class ScheduleInfo(BaseModel):
    day: str
    startTime: LessonTime
    endTime: LessonTime
    duration: int = Field(ge=1)
    location: str
    notes: str | None = None


class StudentAssignment(BaseModel):
    id: str = Field(min_length=1, max_length=36)
    teacherId: str = Field(min_length=1, max_length=36)
    isActive: bool = True
    day: str
    time: LessonTime
    duration: int = Field(ge=1)
    location: str
    timeBlockId: str
    lessonId: str
    scheduleSlotId: str
    scheduleInfo: ScheduleInfo | None
    startDate: date
    endDate: date | None = None
    isRecurring: bool = True
    notes: str = ""
    createdAt: datetime = Field(default_factory=utcnow)
    updatedAt: datetime = Field(default_factory=utcnow)


class VerificationReport(BaseModel):
    tenantId: str
    teachers: int = 0
    students: int = 0
    totalBlocks: int = 0
    blocksWithLessons: int = 0
    totalLessonRefs: int = 0
    validAssignments: int = 0
    invalidBlockRefs: int = 0
    missingScheduleInfo: int = 0
    timeOutsideBlock: int = 0
    orphanedLessonRefs: int = 0
    duplicateLessonIds: int = 0
    elapsedMs: int = 0

    @property
    def violation_count(self) -> int:
        return (
            self.invalidBlockRefs
            + self.missingScheduleInfo
            + self.timeOutsideBlock
            + self.orphanedLessonRefs
            + self.duplicateLessonIds
        )

    @property
    def passed(self) -> bool:
        return self.violation_count == 0

    @property
    def transient_inconsistency(self) -> bool:
        # Student pass committed but teacher pass not (yet) visible.
        return self.validAssignments > 0 and self.totalLessonRefs == 0


class ConsistencyReportResponse(BaseModel):
    summary: VerificationReport
    violationCount: int
    passed: bool
    transientInconsistency: bool

    @classmethod
    def from_report(cls, report: VerificationReport) -> "ConsistencyReportResponse":
        return cls(
            summary=report,
            violationCount=report.violation_count,
            passed=report.passed,
            transientInconsistency=report.transient_inconsistency,
        )
