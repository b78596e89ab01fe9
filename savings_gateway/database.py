"""Engine and session factory for the savings ledger database."""

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from savings_gateway.config import settings


def make_engine(url: str):
    options = {"pool_pre_ping": True}
    if url.startswith("sqlite"):
        # Notification work runs in a threadpool, off the connecting thread.
        options["connect_args"] = {"check_same_thread": False}
    return create_engine(url, **options)


def make_session_factory(bind):
    # Rows returned by LedgerStore stay readable after their session closes.
    return sessionmaker(bind=bind, autocommit=False, autoflush=False, expire_on_commit=False)


engine = make_engine(settings.database_url)
SessionLocal = make_session_factory(engine)
Base = declarative_base()
