"""Command line entry point for the schedule seeder.

Run:
  lessonsync-seed                  # rebuild blocks, pack, synchronize, verify
  lessonsync-seed --verify-only    # only verify existing data
"""

from __future__ import annotations

import argparse
import logging
import sys

from pydantic import ValidationError
from sqlalchemy.orm import sessionmaker

from lessonsync.core.config import Settings, get_settings
from lessonsync.core.logging import setup_logging
from lessonsync.db import bootstrap
from lessonsync.db import session as db_session
from lessonsync.schemas.schedule import OverflowPolicy
from lessonsync.services.schedule_seeder import ScheduleSeeder, SeedRunSummary

logger = logging.getLogger(__name__)

RULE = "=" * 58


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="lessonsync-seed",
        description="Rebuild teacher time blocks, pack student lessons and verify both views.",
    )
    parser.add_argument("--verify-only", action="store_true", help="Only run the consistency verification")
    parser.add_argument("--tenant-id", default=None, help="Tenant scope (defaults to TENANT_ID)")
    parser.add_argument("--database-name", default=None, help="Target database (defaults to DATABASE_NAME)")
    parser.add_argument("--seed", type=int, default=None, help="Random seed for reproducible runs")
    parser.add_argument(
        "--overflow-policy",
        type=OverflowPolicy,
        choices=list(OverflowPolicy),
        default=None,
        help="lenient: overflow may pass block end; bounded: fail when students cannot fit",
    )
    return parser


def resolve_settings(args: argparse.Namespace, base: Settings | None = None) -> Settings:
    base = base or get_settings()
    overrides = {
        "tenant_id": args.tenant_id,
        "database_name": args.database_name,
        "random_seed": args.seed,
        "overflow_policy": args.overflow_policy,
    }
    given = {key: value for key, value in overrides.items() if value is not None}
    # Re-validate so flag values go through the same checks as the environment.
    return Settings.model_validate({**base.model_dump(), **given})


def print_summary(settings: Settings, summary: SeedRunSummary) -> None:
    report = summary.report
    print("")
    print(RULE)
    print("  SCHEDULE SEEDER")
    print(f"  Tenant: {settings.tenant_id}")
    if summary.verify_only:
        print("  Mode: VERIFY ONLY")
    print(RULE)
    if not summary.verify_only:
        print(f"  Teachers with rebuilt blocks: {summary.teachers_rebuilt}")
        print(f"  Students assigned: {summary.students_assigned} ({summary.overflow_assigned} overflow)")
        print(f"  Students skipped: {summary.skipped_students}")
        if summary.sync is not None:
            print(
                f"  Lesson refs: {summary.sync.lesson_refs_written} "
                f"across {summary.sync.teachers_written} teachers"
            )
    if report is not None:
        print(f"  Teachers: {report.teachers}")
        print(f"  Students: {report.students}")
        print(f"  Total blocks: {report.totalBlocks}, with lessons: {report.blocksWithLessons}")
        print(f"  Total lesson refs in teacher blocks: {report.totalLessonRefs}")
        print(f"  Valid student assignments: {report.validAssignments}")
        print(f"  Invalid block refs: {report.invalidBlockRefs}")
        print(f"  Missing scheduleInfo: {report.missingScheduleInfo}")
        print(f"  Time outside block range: {report.timeOutsideBlock}")
        print(f"  Orphaned lesson refs: {report.orphanedLessonRefs}")
        print(f"  Duplicate lesson ids: {report.duplicateLessonIds}")
        print("  All checks passed" if report.passed else "  Issues detected, see counts above")
    print(f"  Total time: {summary.elapsed_ms}ms")
    print(RULE)


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        settings = resolve_settings(args)
    except ValidationError as exc:
        parser.error(str(exc))
    setup_logging(environment=settings.environment)

    engine = None
    try:
        engine = db_session.build_engine(settings.database_url, settings.database_name)
        bootstrap.ensure_runtime_schema_compatibility(engine)
        session_factory = sessionmaker(bind=engine, autoflush=False, autocommit=False)
        with session_factory() as session:
            summary = ScheduleSeeder(session, settings=settings).run(verify_only=args.verify_only)
    except Exception:
        logger.exception("Schedule seeding failed")
        return 1
    finally:
        if engine is not None:
            engine.dispose()

    print_summary(settings, summary)
    return 0


if __name__ == "__main__":
    sys.exit(main())
