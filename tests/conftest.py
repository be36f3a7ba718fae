import os
import sys
import pathlib
import warnings
import logging as _logging

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

try:
    from sqlalchemy.exc import SAWarning
    warnings.filterwarnings('ignore', category=SAWarning)
except Exception:
    # If SQLAlchemy not available at import, ignore
    pass

# The module-level engine in checklists.db is built from this URL at import
# time. Tests never touch it (every fixture below builds its own engine), but
# keep it away from a developer's real database file.
os.environ.setdefault('DATABASE_URL', 'sqlite+aiosqlite:///./test_checklists.db')

# Reduce SQLAlchemy logger verbosity during tests
for _name in ('sqlalchemy', 'sqlalchemy.engine', 'sqlalchemy.pool', 'sqlmodel'):
    _logging.getLogger(_name).setLevel(_logging.ERROR)

# ensure project root is on PYTHONPATH for test runs
ROOT = pathlib.Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from checklists import main
from checklists.db import create_engine_for, make_session_factory, init_db
from checklists.service import ChecklistService


@pytest_asyncio.fixture
async def engine(tmp_path):
    """A fresh SQLite file per test, with tables created."""
    eng = create_engine_for(f"sqlite+aiosqlite:///{tmp_path}/checklists.db", echo=False)
    await init_db(eng)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def service(session_factory):
    return ChecklistService(session_factory)


@pytest_asyncio.fixture
async def sess(session_factory):
    """A raw session for repository-level tests; rolled back at teardown."""
    async with session_factory() as s:
        yield s
        await s.rollback()


@pytest_asyncio.fixture
async def client(service):
    main.app.dependency_overrides[main.get_service] = lambda: service
    transport = ASGITransport(app=main.app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    main.app.dependency_overrides.pop(main.get_service, None)


@pytest_asyncio.fixture
async def project(service):
    """A project with a freshly initialized (empty) categorized checklist."""
    from checklists.client_state import empty_tree

    p = await service.create_project('P1')
    tree = await service.save_checklist_with_categories(empty_tree(p.id))
    return p, tree
