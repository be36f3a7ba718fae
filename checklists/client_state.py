"""In-memory checklist edits applied optimistically before a full-tree save.

The transforms below are pure: each takes a tree, returns a new tree and
leaves its input untouched. `OptimisticEditor` holds the current tree, applies
a transform and then hands the whole tree to a saver (normally
`ChecklistService.save_checklist_with_categories`), mirroring how the web
client turns every user action into one complete round trip.
"""
from typing import Any, Awaitable, Callable, Optional, Union
import logging

from . import config
from .errors import NotFoundError
from .schemas import CategoryNode, ChecklistTree, FlatChecklist, TodoCreate, TodoNode
from .utils import new_id

logger = logging.getLogger(__name__)


def empty_tree(project_id: str, title: Optional[str] = None, checklist_id: Optional[str] = None) -> ChecklistTree:
    """Snapshot used to initialize a project that has no checklist yet."""
    return ChecklistTree(
        id=checklist_id or new_id(),
        title=title or config.DEFAULT_CHECKLIST_TITLE,
        project_id=project_id,
    )


def empty_flat(project_id: str, title: Optional[str] = None, checklist_id: Optional[str] = None) -> FlatChecklist:
    return FlatChecklist(
        id=checklist_id or new_id(),
        title=title or config.DEFAULT_CHECKLIST_TITLE,
        project_id=project_id,
    )


def _copy(tree):
    return tree.model_copy(deep=True)


def _find_category(tree: ChecklistTree, category_id: str) -> Optional[CategoryNode]:
    for c in tree.categories:
        if c.id == category_id:
            return c
    return None


def _locate_todo(tree: ChecklistTree, todo_id: str) -> tuple[Optional[list[TodoNode]], int]:
    """Find a todo: categories first, then the uncategorized bucket."""
    for c in tree.categories:
        for i, t in enumerate(c.todos):
            if t.id == todo_id:
                return c.todos, i
    for i, t in enumerate(tree.uncategorized_todos):
        if t.id == todo_id:
            return tree.uncategorized_todos, i
    return None, -1


def _next_position(siblings) -> int:
    # Positions keep their gaps after deletes, so len() can collide.
    if not siblings:
        return 0
    return max(s.position for s in siblings) + 1


def _as_create(data: Union[str, TodoCreate]) -> TodoCreate:
    if isinstance(data, TodoCreate):
        return data
    return TodoCreate(text=data)


def _patch(model, patch: dict[str, Any], protected: set[str]):
    values = {k: v for k, v in patch.items() if k not in protected}
    return model.model_copy(update=values)


# --- categorized tree -------------------------------------------------------

def rename_checklist(tree: ChecklistTree, title: str) -> ChecklistTree:
    """A blank title keeps the current one."""
    out = _copy(tree)
    out.title = (title or '').strip() or tree.title
    return out


def create_category(tree: ChecklistTree, name: str, color: Optional[str] = None) -> ChecklistTree:
    out = _copy(tree)
    out.categories.append(CategoryNode(id=new_id(), name=name, color=color, position=_next_position(tree.categories), todos=[]))
    return out


def update_category(tree: ChecklistTree, category_id: str, patch: dict[str, Any]) -> ChecklistTree:
    """Patch a category and re-sort so a position edit reorders the view."""
    out = _copy(tree)
    out.categories = [
        _patch(c, patch, {'id', 'todos'}) if c.id == category_id else c
        for c in out.categories
    ]
    # sorted() is stable, so equal positions keep their current order
    out.categories = sorted(out.categories, key=lambda c: c.position)
    return out


def delete_category(tree: ChecklistTree, category_id: str) -> ChecklistTree:
    """Remove a category; its todos move to the end of the uncategorized bucket."""
    out = _copy(tree)
    doomed = _find_category(out, category_id)
    out.categories = [c for c in out.categories if c.id != category_id]
    if doomed is not None:
        for t in doomed.todos:
            t.category_id = None
            out.uncategorized_todos.append(t)
    return out


def create_todo(tree: ChecklistTree, data: Union[str, TodoCreate], category_id: Optional[str] = None) -> ChecklistTree:
    """Append a new todo to a category (or the bucket when category_id is None)."""
    data = _as_create(data)
    category_id = category_id if category_id is not None else data.category_id
    out = _copy(tree)
    if category_id is not None:
        target = _find_category(out, category_id)
        if target is None:
            raise NotFoundError('category', category_id)
        container = target.todos
    else:
        container = out.uncategorized_todos
    container.append(TodoNode(
        id=data.id or new_id(),
        text=data.text,
        completed=False,
        link=data.link,
        price=data.price,
        notes=data.notes,
        position=_next_position(container),
        category_id=category_id,
    ))
    return out


def update_todo(tree: ChecklistTree, todo_id: str, patch: dict[str, Any]) -> ChecklistTree:
    """Patch a todo wherever it lives. Unknown ids leave the tree unchanged."""
    out = _copy(tree)
    container, idx = _locate_todo(out, todo_id)
    if container is not None:
        container[idx] = _patch(container[idx], patch, {'id', 'category_id'})
    return out


def delete_todo(tree: ChecklistTree, todo_id: str) -> ChecklistTree:
    out = _copy(tree)
    container, idx = _locate_todo(out, todo_id)
    if container is not None:
        del container[idx]
    return out


def move_todo_to_category(tree: ChecklistTree, todo_id: str, target_category_id: Optional[str]) -> ChecklistTree:
    """Move a todo to the end of another category, or of the bucket for None."""
    out = _copy(tree)
    container, idx = _locate_todo(out, todo_id)
    if container is None:
        return out
    if target_category_id is not None:
        target = _find_category(out, target_category_id)
        if target is None:
            raise NotFoundError('category', target_category_id)
        dest = target.todos
    else:
        dest = out.uncategorized_todos
    todo = container.pop(idx)
    todo.position = _next_position(dest)
    todo.category_id = target_category_id
    dest.append(todo)
    return out


# --- flat checklist ---------------------------------------------------------

def add_flat_todo(flat: FlatChecklist, data: Union[str, TodoCreate]) -> FlatChecklist:
    data = _as_create(data)
    if not data.text.strip():
        return flat
    out = _copy(flat)
    out.todos.append(TodoNode(
        id=data.id or new_id(),
        text=data.text,
        link=data.link or None,
        price=data.price or None,
        notes=data.notes or None,
        position=_next_position(flat.todos),
        category_id=data.category_id,
    ))
    return out


def toggle_flat_todo(flat: FlatChecklist, todo_id: str) -> FlatChecklist:
    out = _copy(flat)
    for t in out.todos:
        if t.id == todo_id:
            t.completed = not t.completed
    return out


def update_flat_todo(flat: FlatChecklist, todo_id: str, patch: dict[str, Any]) -> FlatChecklist:
    out = _copy(flat)
    out.todos = [_patch(t, patch, {'id'}) if t.id == todo_id else t for t in out.todos]
    return out


def remove_flat_todo(flat: FlatChecklist, todo_id: str) -> FlatChecklist:
    out = _copy(flat)
    out.todos = [t for t in out.todos if t.id != todo_id]
    return out


def clear_completed(flat: FlatChecklist) -> FlatChecklist:
    out = _copy(flat)
    out.todos = [t for t in out.todos if not t.completed]
    return out


# --- optimistic editor ------------------------------------------------------

Saver = Callable[[Any], Awaitable[Optional[Any]]]


class OptimisticEditor:
    """Apply local edits immediately, then save the whole tree.

    The saved tree returned by the saver becomes the new baseline. When the
    save fails the optimistic state is kept (no automatic rollback) and the
    error propagates to the caller, which decides how to notify the user.
    """

    def __init__(self, tree, saver: Saver):
        self.tree = tree
        self._saver = saver

    async def apply(self, transform: Callable[..., Any], *args, **kwargs):
        self.tree = transform(self.tree, *args, **kwargs)
        try:
            saved = await self._saver(self.tree)
        except Exception:
            logger.exception('saving checklist %s failed; keeping local state', getattr(self.tree, 'id', None))
            raise
        if saved is not None:
            self.tree = saved
        return self.tree

    # Convenience wrappers for the categorized tree

    async def rename(self, title: str):
        return await self.apply(rename_checklist, title)

    async def create_category(self, name: str, color: Optional[str] = None):
        return await self.apply(create_category, name, color)

    async def update_category(self, category_id: str, **patch):
        return await self.apply(update_category, category_id, patch)

    async def delete_category(self, category_id: str):
        return await self.apply(delete_category, category_id)

    async def create_todo(self, data: Union[str, TodoCreate], category_id: Optional[str] = None):
        return await self.apply(create_todo, data, category_id)

    async def update_todo(self, todo_id: str, **patch):
        return await self.apply(update_todo, todo_id, patch)

    async def delete_todo(self, todo_id: str):
        return await self.apply(delete_todo, todo_id)

    async def move_todo(self, todo_id: str, target_category_id: Optional[str]):
        return await self.apply(move_todo_to_category, todo_id, target_category_id)
