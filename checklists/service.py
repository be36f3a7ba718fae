"""Boundary operations the UI layer calls.

Each public coroutine opens one unit of work: all statements it issues commit
together, and any failure rolls them back. The session factory is injected so
tests (and alternative stores) can supply their own.
"""
from typing import Optional, Any
import logging

from . import config
from . import repository as repo
from .client_state import empty_flat
from .db import unit_of_work
from .models import Project, Checklist, Category, Todo
from .reconcile import reconcile, reconcile_flat
from .schemas import (
    ChecklistTree,
    FlatChecklist,
    ChecklistTotals,
    ProjectOut,
    ProjectWorkspace,
    TodoCreate,
)
from .tree import assemble_categorized, assemble_flat, summarize

logger = logging.getLogger(__name__)


class ChecklistService:

    def __init__(self, session_factory):
        self._session_factory = session_factory

    def _uow(self):
        return unit_of_work(self._session_factory)

    # --- projects -----------------------------------------------------------

    async def get_all_projects(self) -> list[Project]:
        async with self._uow() as sess:
            return await repo.list_projects(sess)

    async def get_project(self, project_id: str) -> Project:
        async with self._uow() as sess:
            return await repo.get_project(sess, project_id)

    async def create_project(self, name: str) -> Project:
        async with self._uow() as sess:
            p = await repo.create_project(sess, name)
        logger.info('created project %s %r', p.id, p.name)
        return p

    async def update_project(self, project_id: str, name: str) -> Project:
        async with self._uow() as sess:
            return await repo.update_project(sess, project_id, {'name': name})

    async def delete_project(self, project_id: str) -> None:
        async with self._uow() as sess:
            await repo.delete_project(sess, project_id)

    # --- checklist views ----------------------------------------------------

    async def get_checklist_with_categories(self, project_id: str) -> Optional[ChecklistTree]:
        async with self._uow() as sess:
            return await assemble_categorized(sess, project_id)

    async def get_checklist_with_todos(self, project_id: str) -> Optional[FlatChecklist]:
        async with self._uow() as sess:
            return await assemble_flat(sess, project_id)

    async def save_checklist_with_categories(self, tree: ChecklistTree) -> Optional[ChecklistTree]:
        async with self._uow() as sess:
            return await reconcile(sess, tree)

    async def save_checklist(self, flat: FlatChecklist) -> Optional[FlatChecklist]:
        async with self._uow() as sess:
            return await reconcile_flat(sess, flat)

    async def get_checklist_totals(self, project_id: str) -> Optional[ChecklistTotals]:
        tree = await self.get_checklist_with_categories(project_id)
        if tree is None:
            return None
        return summarize(tree)

    async def load_workspace(self) -> list[ProjectWorkspace]:
        """Every project with both views of its checklist.

        Creates the default project with an empty checklist when the store
        has no projects and BOOTSTRAP_DEFAULT_PROJECT is on. Assembles one
        project at a time.
        """
        projects = await self.get_all_projects()
        if not projects and config.BOOTSTRAP_DEFAULT_PROJECT:
            async with self._uow() as sess:
                p = await repo.create_project(sess, config.DEFAULT_PROJECT_NAME)
                await reconcile_flat(sess, empty_flat(p.id))
            logger.info('bootstrapped default project %s', p.id)
            projects = await self.get_all_projects()
        out = []
        for p in projects:
            async with self._uow() as sess:
                flat = await assemble_flat(sess, p.id)
                tree = await assemble_categorized(sess, p.id)
            out.append(ProjectWorkspace(
                project=ProjectOut(id=p.id, name=p.name, created_at=p.created_at),
                checklist=flat,
                checklist_with_categories=tree,
            ))
        return out

    # --- checklists ---------------------------------------------------------

    async def create_checklist(self, project_id: str, title: Optional[str] = None, checklist_id: Optional[str] = None, with_default_category: bool = True) -> Checklist:
        async with self._uow() as sess:
            return await repo.create_checklist(sess, project_id, title=title, checklist_id=checklist_id, with_default_category=with_default_category)

    async def get_checklist(self, checklist_id: str) -> Checklist:
        async with self._uow() as sess:
            return await repo.get_checklist(sess, checklist_id)

    async def update_checklist(self, checklist_id: str, updates: dict[str, Any]) -> Checklist:
        async with self._uow() as sess:
            return await repo.update_checklist(sess, checklist_id, updates)

    async def delete_checklist(self, checklist_id: str) -> None:
        async with self._uow() as sess:
            await repo.delete_checklist(sess, checklist_id)

    # --- categories ---------------------------------------------------------

    async def list_categories(self, checklist_id: str) -> list[Category]:
        async with self._uow() as sess:
            await repo.get_checklist(sess, checklist_id)
            return await repo.list_categories(sess, checklist_id)

    async def create_category(self, checklist_id: str, name: str, color: Optional[str] = None, category_id: Optional[str] = None, position: Optional[int] = None) -> Category:
        async with self._uow() as sess:
            return await repo.create_category(sess, checklist_id, name, color=color, category_id=category_id, position=position)

    async def get_category(self, category_id: str) -> Category:
        async with self._uow() as sess:
            return await repo.get_category(sess, category_id)

    async def update_category(self, category_id: str, updates: dict[str, Any]) -> Category:
        async with self._uow() as sess:
            return await repo.update_category(sess, category_id, updates)

    async def delete_category(self, category_id: str) -> None:
        async with self._uow() as sess:
            await repo.delete_category(sess, category_id)

    # --- todos --------------------------------------------------------------

    async def list_todos(self, checklist_id: str) -> list[Todo]:
        async with self._uow() as sess:
            await repo.get_checklist(sess, checklist_id)
            return await repo.list_todos(sess, checklist_id)

    async def list_todos_by_category(self, category_id: str) -> list[Todo]:
        async with self._uow() as sess:
            await repo.get_category(sess, category_id)
            return await repo.list_todos_by_category(sess, category_id)

    async def create_todo(self, checklist_id: str, data: TodoCreate) -> Todo:
        async with self._uow() as sess:
            return await repo.create_todo(sess, checklist_id, data)

    async def get_todo(self, todo_id: str) -> Todo:
        async with self._uow() as sess:
            return await repo.get_todo(sess, todo_id)

    async def update_todo(self, todo_id: str, updates: dict[str, Any]) -> Todo:
        async with self._uow() as sess:
            return await repo.update_todo(sess, todo_id, updates)

    async def toggle_todo(self, todo_id: str) -> Todo:
        async with self._uow() as sess:
            return await repo.toggle_todo(sess, todo_id)

    async def delete_todo(self, todo_id: str) -> None:
        async with self._uow() as sess:
            await repo.delete_todo(sess, todo_id)
