from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession
from sqlalchemy.ext.asyncio import create_async_engine, AsyncEngine
from sqlalchemy.orm import sessionmaker
from sqlalchemy import event, text
from sqlalchemy.pool import NullPool
from sqlalchemy.exc import IntegrityError, OperationalError, InterfaceError, DisconnectionError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

import asyncio
import atexit
import contextlib
import logging

from . import config
from .errors import ConstraintViolation, TransientStoreError

# Import the table models so SQLModel.metadata knows about all four relations
# before create_all runs.
from . import models  # noqa: F401

logger = logging.getLogger(__name__)

DATABASE_URL = config.DATABASE_URL


def _is_sqlite(url: str | None) -> bool:
    return bool(url) and str(url).startswith('sqlite')


def _enable_sqlite_foreign_keys(dbapi_con, con_record):
    # SQLite ships with FK enforcement off; turn it on per connection so a
    # missing parent surfaces as an IntegrityError like on other stores.
    cur = dbapi_con.cursor()
    try:
        cur.execute("PRAGMA foreign_keys=ON")
    finally:
        cur.close()


def create_engine_for(url: str, echo: bool | None = None) -> AsyncEngine:
    """Build an async engine for `url`.

    NullPool keeps connections from being bound to one event loop, which
    matters for tests that create a loop per test function.
    """
    if echo is None:
        echo = config.SQL_ECHO
    eng = create_async_engine(url, echo=echo, poolclass=NullPool)
    if _is_sqlite(url):
        event.listen(eng.sync_engine, 'connect', _enable_sqlite_foreign_keys)
    return eng


def make_session_factory(bind: AsyncEngine):
    return sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


engine = create_engine_for(DATABASE_URL)
async_session = make_session_factory(engine)


# Columns added after the first release. init_db() adds any that are missing
# from an existing SQLite file; CREATE TABLE never alters existing tables.
_LATE_COLUMNS = {
    'categories': {
        'color': "ALTER TABLE categories ADD COLUMN color VARCHAR",
        'created_at': "ALTER TABLE categories ADD COLUMN created_at DATETIME",
    },
    'todos': {
        'link': "ALTER TABLE todos ADD COLUMN link VARCHAR",
        'price': "ALTER TABLE todos ADD COLUMN price VARCHAR",
        'notes': "ALTER TABLE todos ADD COLUMN notes VARCHAR",
        'updated_at': "ALTER TABLE todos ADD COLUMN updated_at DATETIME",
    },
}


async def init_db(bind: AsyncEngine | None = None):
    """Create tables and apply lightweight SQLite column migrations."""
    bind = bind or engine
    async with bind.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
        if not _is_sqlite(str(bind.url)):
            return
        for table, columns in _LATE_COLUMNS.items():
            try:
                res = await conn.execute(text(f"PRAGMA table_info('{table}')"))
                cols = [r[1] for r in res.fetchall()]
            except Exception:
                # Best-effort only; do not fail init_db if PRAGMA isn't supported
                logger.exception('failed to inspect %s during init_db', table)
                continue
            for col, ddl in columns.items():
                if col in cols:
                    continue
                try:
                    await conn.execute(text(ddl))
                    logger.info('init_db: added %s.%s', table, col)
                except Exception:
                    logger.exception('failed to add column during init_db: %s', ddl)
        # Ordering indices used by every list query
        try:
            await conn.execute(text("CREATE INDEX IF NOT EXISTS ix_categories_checklist_position ON categories(checklist_id, position, created_at)"))
        except Exception:
            logger.exception("failed to create ix_categories_checklist_position during init_db")
        try:
            await conn.execute(text("CREATE INDEX IF NOT EXISTS ix_todos_container_position ON todos(checklist_id, category_id, position, created_at)"))
        except Exception:
            logger.exception("failed to create ix_todos_container_position during init_db")


def translate_db_error(exc: Exception) -> Exception:
    """Map a SQLAlchemy/driver exception onto the service error taxonomy."""
    if isinstance(exc, IntegrityError):
        return ConstraintViolation(str(getattr(exc, 'orig', None) or exc))
    if isinstance(exc, (OperationalError, InterfaceError, DisconnectionError, PoolTimeoutError, asyncio.TimeoutError)):
        return TransientStoreError(str(getattr(exc, 'orig', None) or exc))
    return exc


@contextlib.asynccontextmanager
async def unit_of_work(session_factory=None):
    """Yield a session whose statements commit together or not at all.

    Store exceptions are translated (see translate_db_error); anything
    raised inside the block rolls the whole transaction back.
    """
    factory = session_factory or async_session
    async with factory() as sess:
        try:
            yield sess
            await sess.commit()
        except Exception as e:
            try:
                await sess.rollback()
            except Exception:
                logger.exception('rollback failed')
            translated = translate_db_error(e)
            if translated is e:
                raise
            raise translated from e


# Dispose the sync pool at interpreter exit to avoid finalizer warnings about
# non-checked-in connections during pytest teardown.
def _dispose_sync_engine():
    try:
        engine.sync_engine.dispose()
    except Exception:
        pass


atexit.register(_dispose_sync_engine)
