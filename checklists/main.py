from fastapi import FastAPI, Depends, Request
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from typing import Optional
import logging
import sys

from . import config
from .db import async_session, init_db
from .errors import NotFoundError, ConstraintViolation, TransientStoreError
from .schemas import (
    ChecklistTree,
    FlatChecklist,
    ChecklistTotals,
    ProjectCreate,
    ProjectUpdate,
    ProjectWorkspace,
    ChecklistCreate,
    ChecklistUpdate,
    CategoryCreate,
    CategoryUpdate,
    TodoCreate,
    TodoUpdate,
)
from .service import ChecklistService

logger = logging.getLogger(__name__)
# Ensure INFO-level messages from this package appear on the server console
# when no handlers are configured.
_pkg_logger = logging.getLogger('checklists')
if not _pkg_logger.handlers:
    handler = logging.StreamHandler(sys.stdout)
    formatter = logging.Formatter('%(asctime)s %(levelname)s:%(name)s: %(message)s')
    handler.setFormatter(formatter)
    _pkg_logger.addHandler(handler)
_pkg_logger.setLevel(getattr(logging, config.LOG_LEVEL, logging.INFO))


_service: Optional[ChecklistService] = None


def get_service() -> ChecklistService:
    """FastAPI dependency returning the process-wide service.

    Tests replace it through `app.dependency_overrides`.
    """
    global _service
    if _service is None:
        _service = ChecklistService(async_session)
    return _service


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    logger.info('starting server using DATABASE_URL=%s', config.DATABASE_URL)
    yield


app = FastAPI(lifespan=lifespan)


@app.exception_handler(NotFoundError)
async def _not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={'detail': str(exc)})


@app.exception_handler(ConstraintViolation)
async def _constraint_handler(request: Request, exc: ConstraintViolation):
    logger.warning('%s %s: constraint violation: %s', request.method, request.url.path, exc)
    return JSONResponse(status_code=409, content={'detail': str(exc)})


@app.exception_handler(TransientStoreError)
async def _transient_handler(request: Request, exc: TransientStoreError):
    logger.error('%s %s: store unavailable: %s', request.method, request.url.path, exc)
    return JSONResponse(status_code=503, content={'detail': 'store temporarily unavailable'})


@app.get('/healthz')
async def healthz():
    return {'ok': True}


# --- projects ---------------------------------------------------------------

@app.get('/api/projects')
async def api_list_projects(svc: ChecklistService = Depends(get_service)):
    """Return all projects, newest first."""
    return await svc.get_all_projects()


@app.post('/api/projects')
async def api_create_project(payload: ProjectCreate, svc: ChecklistService = Depends(get_service)):
    return await svc.create_project(payload.name)


@app.get('/api/projects/{project_id}')
async def api_get_project(project_id: str, svc: ChecklistService = Depends(get_service)):
    return await svc.get_project(project_id)


@app.patch('/api/projects/{project_id}')
async def api_update_project(project_id: str, payload: ProjectUpdate, svc: ChecklistService = Depends(get_service)):
    if payload.name is None:
        return await svc.get_project(project_id)
    return await svc.update_project(project_id, payload.name)


@app.delete('/api/projects/{project_id}')
async def api_delete_project(project_id: str, svc: ChecklistService = Depends(get_service)):
    await svc.delete_project(project_id)
    return {'ok': True, 'deleted': project_id}


@app.get('/api/workspace', response_model=list[ProjectWorkspace])
async def api_workspace(svc: ChecklistService = Depends(get_service)):
    """All projects with their flat and categorized checklists."""
    return await svc.load_workspace()


# --- checklist views --------------------------------------------------------

@app.get('/api/projects/{project_id}/checklist', response_model=Optional[ChecklistTree])
async def api_get_checklist_tree(project_id: str, svc: ChecklistService = Depends(get_service)):
    """Categorized checklist of a project; null when it has none yet."""
    return await svc.get_checklist_with_categories(project_id)


@app.put('/api/projects/{project_id}/checklist', response_model=Optional[ChecklistTree])
async def api_save_checklist_tree(project_id: str, tree: ChecklistTree, svc: ChecklistService = Depends(get_service)):
    """Save a full categorized snapshot and return the persisted tree."""
    if tree.project_id != project_id:
        raise ConstraintViolation('project_id in body does not match the URL')
    return await svc.save_checklist_with_categories(tree)


@app.get('/api/projects/{project_id}/checklist/flat', response_model=Optional[FlatChecklist])
async def api_get_checklist_flat(project_id: str, svc: ChecklistService = Depends(get_service)):
    return await svc.get_checklist_with_todos(project_id)


@app.put('/api/projects/{project_id}/checklist/flat', response_model=Optional[FlatChecklist])
async def api_save_checklist_flat(project_id: str, flat: FlatChecklist, svc: ChecklistService = Depends(get_service)):
    if flat.project_id != project_id:
        raise ConstraintViolation('project_id in body does not match the URL')
    return await svc.save_checklist(flat)


@app.get('/api/projects/{project_id}/checklist/totals', response_model=Optional[ChecklistTotals])
async def api_get_checklist_totals(project_id: str, svc: ChecklistService = Depends(get_service)):
    """Open price totals per category, formatted for display."""
    return await svc.get_checklist_totals(project_id)


# --- checklists -------------------------------------------------------------

@app.post('/api/projects/{project_id}/checklists')
async def api_create_checklist(project_id: str, payload: ChecklistCreate, svc: ChecklistService = Depends(get_service)):
    return await svc.create_checklist(
        project_id,
        title=payload.title,
        checklist_id=payload.id,
        with_default_category=payload.with_default_category,
    )


@app.get('/api/checklists/{checklist_id}')
async def api_get_checklist(checklist_id: str, svc: ChecklistService = Depends(get_service)):
    return await svc.get_checklist(checklist_id)


@app.patch('/api/checklists/{checklist_id}')
async def api_update_checklist(checklist_id: str, payload: ChecklistUpdate, svc: ChecklistService = Depends(get_service)):
    return await svc.update_checklist(checklist_id, payload.model_dump(exclude_unset=True))


@app.delete('/api/checklists/{checklist_id}')
async def api_delete_checklist(checklist_id: str, svc: ChecklistService = Depends(get_service)):
    await svc.delete_checklist(checklist_id)
    return {'ok': True, 'deleted': checklist_id}


# --- categories -------------------------------------------------------------

@app.get('/api/checklists/{checklist_id}/categories')
async def api_list_categories(checklist_id: str, svc: ChecklistService = Depends(get_service)):
    """Return categories ordered by position."""
    return {'categories': await svc.list_categories(checklist_id)}


@app.post('/api/checklists/{checklist_id}/categories')
async def api_create_category(checklist_id: str, payload: CategoryCreate, svc: ChecklistService = Depends(get_service)):
    """Create a category. Accepts {name, color?, position?, id?}."""
    return await svc.create_category(
        checklist_id,
        payload.name,
        color=payload.color,
        category_id=payload.id,
        position=payload.position,
    )


@app.get('/api/categories/{category_id}')
async def api_get_category(category_id: str, svc: ChecklistService = Depends(get_service)):
    return await svc.get_category(category_id)


@app.patch('/api/categories/{category_id}')
async def api_update_category(category_id: str, payload: CategoryUpdate, svc: ChecklistService = Depends(get_service)):
    return await svc.update_category(category_id, payload.model_dump(exclude_unset=True))


@app.delete('/api/categories/{category_id}')
async def api_delete_category(category_id: str, svc: ChecklistService = Depends(get_service)):
    await svc.delete_category(category_id)
    return {'ok': True, 'deleted': category_id}


@app.get('/api/categories/{category_id}/todos')
async def api_list_category_todos(category_id: str, svc: ChecklistService = Depends(get_service)):
    return {'todos': await svc.list_todos_by_category(category_id)}


# --- todos ------------------------------------------------------------------

@app.get('/api/checklists/{checklist_id}/todos')
async def api_list_todos(checklist_id: str, svc: ChecklistService = Depends(get_service)):
    return {'todos': await svc.list_todos(checklist_id)}


@app.post('/api/checklists/{checklist_id}/todos')
async def api_create_todo(checklist_id: str, payload: TodoCreate, svc: ChecklistService = Depends(get_service)):
    """Create a todo. Accepts {text, price?, link?, notes?, category_id?, id?}."""
    return await svc.create_todo(checklist_id, payload)


@app.get('/api/todos/{todo_id}')
async def api_get_todo(todo_id: str, svc: ChecklistService = Depends(get_service)):
    return await svc.get_todo(todo_id)


@app.patch('/api/todos/{todo_id}')
async def api_update_todo(todo_id: str, payload: TodoUpdate, svc: ChecklistService = Depends(get_service)):
    """Partial update: only keys present in the body change; null clears."""
    return await svc.update_todo(todo_id, payload.model_dump(exclude_unset=True))


@app.post('/api/todos/{todo_id}/toggle')
async def api_toggle_todo(todo_id: str, svc: ChecklistService = Depends(get_service)):
    return await svc.toggle_todo(todo_id)


@app.delete('/api/todos/{todo_id}')
async def api_delete_todo(todo_id: str, svc: ChecklistService = Depends(get_service)):
    await svc.delete_todo(todo_id)
    return {'ok': True, 'deleted': todo_id}
