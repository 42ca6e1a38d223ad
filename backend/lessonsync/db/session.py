from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import sessionmaker

from lessonsync.core.config import get_settings


def resolve_database_url(database_url: str, database_name: str | None = None) -> str:
    url = make_url(database_url.strip())
    if database_name:
        url = url.set(database=database_name)
    return url.render_as_string(hide_password=False)


def build_engine(database_url: str, database_name: str | None = None) -> Engine:
    # pool_pre_ping helps with stale pooled connections between seeding phases.
    return create_engine(resolve_database_url(database_url, database_name), pool_pre_ping=True)


settings = get_settings()

engine = build_engine(settings.database_url, settings.database_name)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)
