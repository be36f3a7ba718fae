"""Per-entity CRUD for projects, checklists, categories and todos.

Every function takes the caller's AsyncSession and only flushes; committing
is the caller's job so several calls can share one transaction (see
`checklists.db.unit_of_work`).

Partial updates take a dict of the keys to change. A missing key leaves the
field alone, an explicit None clears a nullable field.
"""
from typing import Optional, Any
import logging

from sqlmodel import select
from sqlalchemy import update as sqlalchemy_update
from sqlalchemy import delete as sqlalchemy_delete
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from .db import translate_db_error
from .errors import NotFoundError, ConstraintViolation
from .models import Project, Checklist, Category, Todo
from .schemas import TodoCreate
from .utils import now_utc, blank_to_none, price_to_storage
from . import config

logger = logging.getLogger(__name__)


async def flush_or_raise(sess) -> None:
    try:
        await sess.flush()
    except SQLAlchemyError as e:
        raise translate_db_error(e) from e


async def _get_or_404(sess, model, entity: str, entity_id: str):
    row = await sess.get(model, entity_id)
    if row is None:
        raise NotFoundError(entity, entity_id)
    return row


def require_text(entity: str, field: str, value) -> str:
    if value is None or not isinstance(value, str) or value.strip() == '':
        raise ConstraintViolation(f'{entity}.{field} is required')
    return value


def _apply_updates(row, entity: str, updates: dict[str, Any], allowed: set[str], required: set[str]) -> None:
    for key, value in updates.items():
        if key not in allowed:
            raise ConstraintViolation(f'{entity}: unknown field {key!r}')
        if value is None and key in required:
            raise ConstraintViolation(f'{entity}.{key} cannot be null')
        setattr(row, key, value)


# --- projects ---------------------------------------------------------------

async def create_project(sess, name: str, project_id: Optional[str] = None) -> Project:
    name = require_text('project', 'name', name).strip()
    p = Project(name=name)
    if project_id:
        p.id = project_id
    sess.add(p)
    await flush_or_raise(sess)
    return p


async def get_project(sess, project_id: str) -> Project:
    return await _get_or_404(sess, Project, 'project', project_id)


async def list_projects(sess) -> list[Project]:
    """All projects, newest first."""
    res = await sess.exec(select(Project).order_by(Project.created_at.desc(), Project.id.asc()))
    return list(res.all())


async def update_project(sess, project_id: str, updates: dict[str, Any]) -> Project:
    p = await get_project(sess, project_id)
    if 'name' in updates and updates['name'] is not None:
        updates = {**updates, 'name': require_text('project', 'name', updates['name']).strip()}
    _apply_updates(p, 'project', updates, {'name'}, {'name'})
    sess.add(p)
    await flush_or_raise(sess)
    return p


async def delete_project(sess, project_id: str) -> None:
    """Remove a project and everything it owns: todos, categories, checklists, project."""
    res = await sess.exec(select(Checklist.id).where(Checklist.project_id == project_id))
    checklist_ids = list(res.all())
    if checklist_ids:
        await sess.exec(sqlalchemy_delete(Todo).where(Todo.checklist_id.in_(checklist_ids)))
        await sess.exec(sqlalchemy_delete(Category).where(Category.checklist_id.in_(checklist_ids)))
        await sess.exec(sqlalchemy_delete(Checklist).where(Checklist.id.in_(checklist_ids)))
    await sess.exec(sqlalchemy_delete(Project).where(Project.id == project_id))
    await flush_or_raise(sess)
    logger.info('deleted project %s (%d checklists)', project_id, len(checklist_ids))


# --- checklists -------------------------------------------------------------

async def create_checklist(
    sess,
    project_id: str,
    title: Optional[str] = None,
    checklist_id: Optional[str] = None,
    with_default_category: bool = True,
) -> Checklist:
    """Insert a checklist for a project.

    With `with_default_category` a category named config.DEFAULT_CATEGORY_NAME
    is created at position 0 so flat-view todos have a container.
    """
    title = blank_to_none(title) or config.DEFAULT_CHECKLIST_TITLE
    cl = Checklist(project_id=project_id, title=title)
    if checklist_id:
        cl.id = checklist_id
    sess.add(cl)
    await flush_or_raise(sess)
    if with_default_category:
        sess.add(Category(checklist_id=cl.id, name=config.DEFAULT_CATEGORY_NAME, position=0))
        await flush_or_raise(sess)
    return cl


async def get_checklist(sess, checklist_id: str) -> Checklist:
    return await _get_or_404(sess, Checklist, 'checklist', checklist_id)


async def list_checklists(sess, project_id: str) -> list[Checklist]:
    res = await sess.exec(
        select(Checklist)
        .where(Checklist.project_id == project_id)
        .order_by(Checklist.created_at.asc(), Checklist.id.asc())
    )
    return list(res.all())


async def find_checklist_for_project(sess, project_id: str) -> Optional[Checklist]:
    res = await sess.exec(
        select(Checklist)
        .where(Checklist.project_id == project_id)
        .order_by(Checklist.created_at.asc(), Checklist.id.asc())
        .limit(1)
    )
    return res.first()


async def update_checklist(sess, checklist_id: str, updates: dict[str, Any]) -> Checklist:
    cl = await get_checklist(sess, checklist_id)
    if updates.get('title') is not None:
        require_text('checklist', 'title', updates['title'])
    _apply_updates(cl, 'checklist', updates, {'title'}, {'title'})
    sess.add(cl)
    await flush_or_raise(sess)
    return cl


async def delete_checklist(sess, checklist_id: str) -> None:
    await sess.exec(sqlalchemy_delete(Todo).where(Todo.checklist_id == checklist_id))
    await sess.exec(sqlalchemy_delete(Category).where(Category.checklist_id == checklist_id))
    await sess.exec(sqlalchemy_delete(Checklist).where(Checklist.id == checklist_id))
    await flush_or_raise(sess)


# --- categories -------------------------------------------------------------

async def next_category_position(sess, checklist_id: str) -> int:
    res = await sess.exec(select(func.max(Category.position)).where(Category.checklist_id == checklist_id))
    cur = res.first()
    return 0 if cur is None else int(cur) + 1


async def create_category(
    sess,
    checklist_id: str,
    name: str,
    color: Optional[str] = None,
    category_id: Optional[str] = None,
    position: Optional[int] = None,
) -> Category:
    name = require_text('category', 'name', name)
    if position is None:
        position = await next_category_position(sess, checklist_id)
    c = Category(checklist_id=checklist_id, name=name, color=blank_to_none(color), position=position)
    if category_id:
        c.id = category_id
    sess.add(c)
    await flush_or_raise(sess)
    return c


async def get_category(sess, category_id: str) -> Category:
    return await _get_or_404(sess, Category, 'category', category_id)


async def list_categories(sess, checklist_id: str) -> list[Category]:
    res = await sess.exec(
        select(Category)
        .where(Category.checklist_id == checklist_id)
        .order_by(Category.position.asc(), Category.created_at.asc())
    )
    return list(res.all())


async def update_category(sess, category_id: str, updates: dict[str, Any]) -> Category:
    c = await get_category(sess, category_id)
    if updates.get('name') is not None:
        require_text('category', 'name', updates['name'])
    if 'color' in updates:
        updates = {**updates, 'color': blank_to_none(updates['color'])}
    _apply_updates(c, 'category', updates, {'name', 'color', 'position'}, {'name', 'position'})
    sess.add(c)
    await flush_or_raise(sess)
    return c


async def delete_category(sess, category_id: str) -> None:
    """Delete a category; its todos move to the uncategorized bucket."""
    res = await sess.exec(
        sqlalchemy_update(Todo)
        .where(Todo.category_id == category_id)
        .values(category_id=None, updated_at=now_utc())
    )
    await sess.exec(sqlalchemy_delete(Category).where(Category.id == category_id))
    await flush_or_raise(sess)
    moved = getattr(res, 'rowcount', None)
    if moved:
        logger.info('delete_category %s: moved %s todos to uncategorized', category_id, moved)


# --- todos ------------------------------------------------------------------

async def _check_category_in_checklist(sess, category_id: Optional[str], checklist_id: str) -> None:
    if category_id is None:
        return
    cat = await sess.get(Category, category_id)
    if cat is None:
        raise ConstraintViolation(f'category {category_id!r} does not exist')
    if cat.checklist_id != checklist_id:
        raise ConstraintViolation(f'category {category_id!r} belongs to another checklist')


async def next_todo_position(sess, checklist_id: str, category_id: Optional[str]) -> int:
    """Next position within a container (a category or the uncategorized bucket)."""
    q = select(func.max(Todo.position)).where(Todo.checklist_id == checklist_id)
    if category_id is None:
        q = q.where(Todo.category_id == None)  # noqa: E711
    else:
        q = q.where(Todo.category_id == category_id)
    res = await sess.exec(q)
    cur = res.first()
    return 0 if cur is None else int(cur) + 1


async def create_todo(sess, checklist_id: str, data: TodoCreate) -> Todo:
    text = require_text('todo', 'text', data.text)
    await _check_category_in_checklist(sess, data.category_id, checklist_id)
    position = await next_todo_position(sess, checklist_id, data.category_id)
    t = Todo(
        checklist_id=checklist_id,
        category_id=data.category_id,
        text=text,
        completed=False,
        link=blank_to_none(data.link),
        price=price_to_storage(data.price),
        notes=blank_to_none(data.notes),
        position=position,
    )
    if data.id:
        t.id = data.id
    sess.add(t)
    await flush_or_raise(sess)
    return t


async def get_todo(sess, todo_id: str) -> Todo:
    return await _get_or_404(sess, Todo, 'todo', todo_id)


async def list_todos(sess, checklist_id: str) -> list[Todo]:
    res = await sess.exec(
        select(Todo)
        .where(Todo.checklist_id == checklist_id)
        .order_by(Todo.position.asc(), Todo.created_at.asc())
    )
    return list(res.all())


async def list_todos_by_category(sess, category_id: str) -> list[Todo]:
    res = await sess.exec(
        select(Todo)
        .where(Todo.category_id == category_id)
        .order_by(Todo.position.asc(), Todo.created_at.asc())
    )
    return list(res.all())


_TODO_FIELDS = {'text', 'completed', 'link', 'price', 'notes', 'category_id', 'position'}
_TODO_REQUIRED = {'text', 'completed', 'position'}


async def update_todo(sess, todo_id: str, updates: dict[str, Any]) -> Todo:
    t = await get_todo(sess, todo_id)
    updates = dict(updates)
    if updates.get('text') is not None:
        require_text('todo', 'text', updates['text'])
    for key in ('link', 'notes'):
        if key in updates:
            updates[key] = blank_to_none(updates[key])
    if 'price' in updates:
        updates['price'] = price_to_storage(updates['price'])
    if 'category_id' in updates:
        await _check_category_in_checklist(sess, updates['category_id'], t.checklist_id)
    _apply_updates(t, 'todo', updates, _TODO_FIELDS, _TODO_REQUIRED)
    t.updated_at = now_utc()
    sess.add(t)
    await flush_or_raise(sess)
    return t


async def toggle_todo(sess, todo_id: str) -> Todo:
    t = await get_todo(sess, todo_id)
    t.completed = not t.completed
    t.updated_at = now_utc()
    sess.add(t)
    await flush_or_raise(sess)
    return t


async def delete_todo(sess, todo_id: str) -> None:
    await sess.exec(sqlalchemy_delete(Todo).where(Todo.id == todo_id))
    await flush_or_raise(sess)
