"""Rebuild teacher time blocks and pack student lessons back-to-back.

Run:
  PYTHONPATH=backend python scripts/seed_schedules.py
  PYTHONPATH=backend python scripts/seed_schedules.py --verify-only
"""

from __future__ import annotations

import sys

from lessonsync.cli import main


if __name__ == "__main__":
    sys.exit(main())
