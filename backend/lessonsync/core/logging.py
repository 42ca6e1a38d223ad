from __future__ import annotations

import logging
import logging.handlers
from pathlib import Path


DEFAULT_LOG_DIR = Path(__file__).resolve().parents[2] / "logs"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"
HANDLER_PREFIX = "lessonsync."

# Libraries that drown the seeder's phase logs at DEBUG.
QUIET_LOGGERS = ("sqlalchemy.engine", "sqlalchemy.pool", "httpx")


def level_for(environment: str | None) -> int:
    return logging.INFO if (environment or "").strip().lower() == "production" else logging.DEBUG


def build_handlers(environment: str | None, log_dir: Path | None = None) -> list[logging.Handler]:
    """Console always; a rotating ``lessonsync.log`` only in production."""
    level = level_for(environment)
    formatter = logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%dT%H:%M:%S%z")

    console = logging.StreamHandler()
    console.set_name(f"{HANDLER_PREFIX}console")
    handlers: list[logging.Handler] = [console]

    if level == logging.INFO:
        target = log_dir or DEFAULT_LOG_DIR
        target.mkdir(parents=True, exist_ok=True)
        rotating = logging.handlers.RotatingFileHandler(
            target / "lessonsync.log",
            maxBytes=10 * 1024 * 1024,
            backupCount=5,
            encoding="utf-8",
        )
        rotating.set_name(f"{HANDLER_PREFIX}file")
        handlers.append(rotating)

    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
    return handlers


def setup_logging(*, environment: str | None, log_dir: Path | None = None) -> None:
    """Attach the lessonsync handlers to the root logger once per process."""
    root = logging.getLogger()
    if any((handler.get_name() or "").startswith(HANDLER_PREFIX) for handler in root.handlers):
        return

    for handler in build_handlers(environment, log_dir):
        root.addHandler(handler)
    root.setLevel(level_for(environment))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
