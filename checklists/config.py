"""Runtime configuration for the checklists service.

Values are read from environment variables once, at import time. The
database URL in particular is resolved here and handed to the engine in
`checklists.db`; nothing re-reads it later.
"""
import os


def _trueish(v: str | None) -> bool:
    if not v:
        return False
    return v.lower() in ('1', 'true', 'yes', 'on')


# SQLAlchemy async URL of the relational store. Defaults to a local SQLite
# file next to the working directory.
DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite+aiosqlite:///./checklists.db')

# Echo every SQL statement to the log (development only).
SQL_ECHO = _trueish(os.getenv('SQL_ECHO', '0'))

# Log level for the service loggers (DEBUG, INFO, WARNING, ...).
LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO').upper()

# Name of the project created when the workspace is loaded and no project
# exists yet.
DEFAULT_PROJECT_NAME = os.getenv('DEFAULT_PROJECT_NAME', 'Mein erstes Projekt')

# Title given to freshly initialized checklists.
DEFAULT_CHECKLIST_TITLE = os.getenv('DEFAULT_CHECKLIST_TITLE', 'Projektaufgaben')

# Category inserted alongside a checklist created through the flat (legacy)
# path. Todos saved through the flat view without a category land here.
DEFAULT_CATEGORY_NAME = os.getenv('DEFAULT_CATEGORY_NAME', 'General')

# When true, loading the workspace with an empty projects table creates the
# default project and its empty checklist.
BOOTSTRAP_DEFAULT_PROJECT = _trueish(os.getenv('BOOTSTRAP_DEFAULT_PROJECT', '1'))

# Suffix appended to formatted price totals.
CURRENCY_SUFFIX = os.getenv('CURRENCY_SUFFIX', ' €')


# Optional local overrides: define variables in checklists/local_config.py to
# override the defaults above without changing versioned config.
try:
    from .local_config import *  # type: ignore  # noqa: F401,F403
except ImportError:
    # No local overrides present; proceed with defaults.
    pass
