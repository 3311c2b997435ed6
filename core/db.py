"""
core/db.py -- Shared SQLAlchemy engine and schema registry.

Accounts, categories and listings live in one database because listings carry
foreign keys to both. Database owns the engine and its connection pool; the
stores in auth/store.py and catalog/store.py receive a Database at
construction time and never create engines of their own. Nothing in the
project reaches for a module-level handle -- whoever builds the app passes the
Database down explicitly.

Tables are declared next to the store that owns them (auth/store.py,
catalog/store.py) on the shared `metadata` below. Each store calls
create_schema() from its constructor; create_all() is idempotent.

SQLite specifics:
  check_same_thread=False -- FastAPI runs sync handlers in a thread pool.
  PRAGMA foreign_keys=ON  -- SQLite ignores FK constraints unless asked,
                             per connection.
  PRAGMA journal_mode=WAL -- readers do not block during writes.
  lower()                 -- replaced with a Unicode-aware version; the
                             built-in only folds ASCII, which breaks
                             case-insensitive search on "CAFÉ".

Layer rule: core/ is the kernel -- no imports from api/, auth/, or catalog/.
"""

from __future__ import annotations

import logging

from sqlalchemy import MetaData, create_engine, event, func, select, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger("bechdo.db")

metadata = MetaData()

# Largest value a 64-bit SQL INTEGER holds. Ids and OFFSETs above it make the
# driver raise OverflowError instead of returning no rows.
MAX_INTEGER = 2**63 - 1


def _unicode_lower(value):
    return value.lower() if isinstance(value, str) else value


def _set_sqlite_pragmas(dbapi_conn, connection_record) -> None:
    """Enable FK enforcement and WAL, and install lower(), on every new SQLite connection.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.close()
    dbapi_conn.create_function("lower", 1, _unicode_lower, deterministic=True)


class Database:
    """Engine holder passed into every store.

    Usage:
        db = Database("sqlite:///./bechdo.db")
        accounts = AccountStore(db)
        catalog = CatalogStore(db)
        db.ping()
        db.close()
    """

    def __init__(self, url: str) -> None:
        self.url = url
        connect_args: dict = {}
        if url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(url, connect_args=connect_args)
        if url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_sqlite_pragmas)

    def create_schema(self) -> None:
        metadata.create_all(self.engine)

    def ping(self) -> bool:
        """Return True if a trivial statement round-trips to the database."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError:
            logger.exception("Database ping failed")
            return False
        return True

    def count_rows(self, *table_names: str) -> dict[str, int]:
        """Return {table_name: row count} for tables registered on metadata.

        Soft-deleted rows are counted too -- this is a storage statistic, not
        a business figure. Unknown names raise KeyError rather than being
        interpolated into SQL.
        """
        counts: dict[str, int] = {}
        with self.engine.connect() as conn:
            for name in table_names:
                table = metadata.tables[name]
                counts[name] = conn.execute(select(func.count()).select_from(table)).scalar() or 0
        return counts

    def close(self) -> None:
        self.engine.dispose()
