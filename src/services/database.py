"""
Catalog store connection handling.

One engine and one session factory per process, created lazily from the
configured database URL. Every service function that is not handed a
session opens its own unit of work through session_scope().

SQLite connections get foreign keys switched on, so an item can never point
at a category, size or modifier group that does not exist.
"""

import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional

from sqlalchemy import create_engine, event, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ..models.base import Base
from ..utils.config import get_config

logger = logging.getLogger(__name__)

# Tables an import cannot run without
REQUIRED_TABLES = ("menu_categories", "item_sizes", "modifier_groups", "menu_items")

_engine: Optional[Engine] = None
_SessionFactory: Optional[sessionmaker] = None


@event.listens_for(Engine, "connect")
def _set_sqlite_pragma(dbapi_connection, connection_record):
    if "sqlite" not in type(dbapi_connection).__module__:
        return
    cursor = dbapi_connection.cursor()
    try:
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute("PRAGMA synchronous=NORMAL")
    finally:
        cursor.close()


def _engine_options(database_url: str) -> Dict[str, Any]:
    """Driver-specific create_engine() keyword arguments for a URL."""
    if not database_url.startswith("sqlite"):
        return {"pool_pre_ping": True}

    if ":memory:" in database_url or "mode=memory" in database_url:
        # Every session must see the same in-memory database
        return {"connect_args": {"check_same_thread": False}, "poolclass": StaticPool}

    return {"connect_args": {"check_same_thread": False, "timeout": 30}}


def create_database_engine(database_url: Optional[str] = None, echo: bool = False) -> Engine:
    """
    Build an engine for the catalog store.

    Args:
        database_url: SQLAlchemy URL; the configured URL when omitted
        echo: Log every SQL statement
    """
    url = database_url or get_config().database_url
    logger.info(f"Opening catalog store: {url}")
    return create_engine(url, echo=echo, **_engine_options(url))


def get_engine(force_recreate: bool = False) -> Engine:
    global _engine

    if force_recreate or _engine is None:
        _engine = create_database_engine()
    return _engine


def get_session_factory() -> sessionmaker:
    global _SessionFactory

    if _SessionFactory is None:
        # Import results are read after commit, so rows must not expire
        _SessionFactory = sessionmaker(bind=get_engine(), expire_on_commit=False)
    return _SessionFactory


@contextmanager
def session_scope() -> Iterator[Session]:
    """
    Run a block as one unit of work.

    The session commits when the block exits normally and rolls back when it
    raises; it is closed either way. A block may call session.rollback()
    itself to discard its work, which is how a dry-run import ends.

    Example:
        with session_scope() as session:
            session.add(MenuCategory(business_id="store-1", name="Drinks"))
    """
    session = get_session_factory()()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def _create_catalog_tables(engine: Engine) -> None:
    # Importing the package registers every mapped class on Base.metadata
    from .. import models  # noqa: F401

    Base.metadata.create_all(engine)


def init_database(engine: Optional[Engine] = None) -> None:
    """Create any missing catalog tables. Existing tables are left as they are."""
    engine = engine or get_engine()
    _create_catalog_tables(engine)
    logger.info("Catalog tables ready")


def verify_database() -> bool:
    """True when the store is reachable and holds the tables an import writes to."""
    try:
        present = set(inspect(get_engine()).get_table_names())
    except Exception as e:
        logger.error(f"Catalog store check failed: {e}")
        return False

    missing = [name for name in REQUIRED_TABLES if name not in present]
    if missing:
        logger.warning(f"Catalog store is missing tables: {', '.join(missing)}")
    return not missing


def reset_database(confirm: bool = False) -> None:
    """
    Drop and recreate every catalog table, deleting all imported data.

    Raises:
        ValueError: confirm was not True
    """
    if not confirm:
        raise ValueError("Must pass confirm=True to reset database. This will delete all data!")

    engine = get_engine()
    logger.warning("Dropping all catalog tables")
    Base.metadata.drop_all(engine)
    _create_catalog_tables(engine)
    logger.info("Catalog tables recreated")


def close_connections() -> None:
    """Dispose of the shared engine; the next session_scope() reconnects."""
    global _engine, _SessionFactory

    _SessionFactory = None
    if _engine is not None:
        _engine.dispose()
        _engine = None
    logger.info("Catalog store connections closed")


def initialize_app_database() -> None:
    """Make sure the configured store exists and has the catalog schema before an import."""
    config = get_config()
    state = "existing" if config.database_exists() else "new"
    logger.info(f"Using {state} catalog store at {config.database_url}")

    init_database(get_engine())

    if verify_database():
        logger.info("Catalog store verified")
