"""Converge the store to a client-held checklist snapshot.

The client sends the whole tree after every local edit. Reconciliation diffs
that snapshot against the rows of the checklist and issues the inserts,
updates and deletes needed to make the store match it:

1. upsert the checklist row (insert, or update the title);
2. categories missing from the snapshot are deleted (their todos become
   uncategorized), known ones are overwritten, new ones are inserted with the
   id the client minted;
3. every todo in the snapshot is upserted by id with `category_id` set to the
   container it was found in, which is how moves between categories persist;
4. todos of the checklist absent from the snapshot are deleted.

The functions here only flush. Callers run them inside one transaction
(`checklists.db.unit_of_work`) so a failure leaves the store untouched.
"""
from collections import Counter
from typing import Iterator, Optional
import logging

from . import repository as repo
from .errors import ConstraintViolation
from .models import Checklist, Category, Todo
from .schemas import ChecklistTree, FlatChecklist, TodoNode
from .tree import assemble_categorized, assemble_flat
from .utils import now_utc, blank_to_none, price_to_storage

logger = logging.getLogger(__name__)


async def _upsert_checklist(sess, checklist_id: str, title: str, project_id: str, stats: Counter, with_default_category: bool) -> Checklist:
    row = await sess.get(Checklist, checklist_id)
    if row is None:
        stats['checklists_inserted'] += 1
        return await repo.create_checklist(
            sess,
            project_id,
            title=title,
            checklist_id=checklist_id,
            with_default_category=with_default_category,
        )
    if row.project_id != project_id:
        raise ConstraintViolation(f'checklist {checklist_id!r} belongs to another project')
    title = blank_to_none(title)
    if title is not None and title != row.title:
        row.title = title
        sess.add(row)
        stats['checklists_updated'] += 1
    return row


def _iter_todos(tree: ChecklistTree) -> Iterator[tuple[Optional[str], TodoNode]]:
    """Yield (container category id, todo) for every todo in the snapshot."""
    for cat in tree.categories:
        for t in cat.todos:
            yield cat.id, t
    for t in tree.uncategorized_todos:
        yield None, t


def _write_todo_fields(row: Todo, node: TodoNode, category_id: Optional[str], set_category: bool = True) -> bool:
    """Overwrite a todo row from a snapshot node. Returns True if anything changed."""
    values = {
        'text': node.text,
        'completed': bool(node.completed),
        'position': node.position or 0,
        'price': price_to_storage(node.price),
        'link': blank_to_none(node.link),
        'notes': blank_to_none(node.notes),
    }
    if set_category:
        values['category_id'] = category_id
    changed = False
    for key, value in values.items():
        if getattr(row, key) != value:
            setattr(row, key, value)
            changed = True
    if changed:
        row.updated_at = now_utc()
    return changed


def _new_todo(checklist_id: str, node: TodoNode, category_id: Optional[str]) -> Todo:
    repo.require_text('todo', 'text', node.text)
    return Todo(
        id=node.id,
        checklist_id=checklist_id,
        category_id=category_id,
        text=node.text,
        completed=bool(node.completed),
        position=node.position or 0,
        price=price_to_storage(node.price),
        link=blank_to_none(node.link),
        notes=blank_to_none(node.notes),
    )


async def _ensure_unclaimed(sess, model, entity: str, entity_id: str) -> None:
    # An id unknown to this checklist may still exist elsewhere; refuse to
    # steal it from another checklist.
    other = await sess.get(model, entity_id)
    if other is not None:
        raise ConstraintViolation(f'{entity} {entity_id!r} belongs to another checklist')


async def reconcile(sess, desired: ChecklistTree) -> Optional[ChecklistTree]:
    """Apply a categorized snapshot and return the re-assembled tree."""
    stats: Counter = Counter()
    checklist = await _upsert_checklist(sess, desired.id, desired.title, desired.project_id, stats, with_default_category=False)

    # categories
    existing_cats = {c.id: c for c in await repo.list_categories(sess, checklist.id)}
    desired_cat_ids = [c.id for c in desired.categories]
    if len(set(desired_cat_ids)) != len(desired_cat_ids):
        raise ConstraintViolation('category ids in snapshot are not unique')
    for cid in existing_cats.keys() - set(desired_cat_ids):
        await repo.delete_category(sess, cid)
        stats['categories_deleted'] += 1
    for node in desired.categories:
        repo.require_text('category', 'name', node.name)
        row = existing_cats.get(node.id)
        if row is not None:
            # last writer wins: overwrite unconditionally
            row.name = node.name
            row.color = blank_to_none(node.color)
            row.position = node.position or 0
            sess.add(row)
            stats['categories_updated'] += 1
        else:
            await _ensure_unclaimed(sess, Category, 'category', node.id)
            sess.add(Category(
                id=node.id,
                checklist_id=checklist.id,
                name=node.name,
                color=blank_to_none(node.color),
                position=node.position or 0,
            ))
            stats['categories_inserted'] += 1
    await repo.flush_or_raise(sess)

    # todos
    existing_todos = {t.id: t for t in await repo.list_todos(sess, checklist.id)}
    seen: set[str] = set()
    for category_id, node in _iter_todos(desired):
        if node.id in seen:
            raise ConstraintViolation(f'todo {node.id!r} appears more than once in snapshot')
        seen.add(node.id)
        row = existing_todos.get(node.id)
        if row is not None:
            repo.require_text('todo', 'text', node.text)
            if _write_todo_fields(row, node, category_id):
                sess.add(row)
                stats['todos_updated'] += 1
        else:
            await _ensure_unclaimed(sess, Todo, 'todo', node.id)
            sess.add(_new_todo(checklist.id, node, category_id))
            stats['todos_inserted'] += 1
    await repo.flush_or_raise(sess)

    for tid in existing_todos.keys() - seen:
        await repo.delete_todo(sess, tid)
        stats['todos_deleted'] += 1

    logger.info('reconcile checklist=%s %s', checklist.id, dict(stats) or 'no changes')
    return await assemble_categorized(sess, desired.project_id)


async def reconcile_flat(sess, desired: FlatChecklist) -> Optional[FlatChecklist]:
    """Apply a flat (legacy) snapshot and return the re-assembled flat checklist.

    Checklists created here get the default category. New todos without a
    usable category go into the first category of the checklist; existing
    todos keep theirs.
    """
    stats: Counter = Counter()
    checklist = await _upsert_checklist(sess, desired.id, desired.title, desired.project_id, stats, with_default_category=True)

    existing_todos = {t.id: t for t in await repo.list_todos(sess, checklist.id)}
    desired_ids = [t.id for t in desired.todos]
    if len(set(desired_ids)) != len(desired_ids):
        raise ConstraintViolation('todo ids in snapshot are not unique')
    for tid in existing_todos.keys() - set(desired_ids):
        await repo.delete_todo(sess, tid)
        stats['todos_deleted'] += 1

    categories = await repo.list_categories(sess, checklist.id)
    own_category_ids = {c.id for c in categories}
    default_category_id = categories[0].id if categories else None

    for node in desired.todos:
        row = existing_todos.get(node.id)
        if row is not None:
            repo.require_text('todo', 'text', node.text)
            if _write_todo_fields(row, node, None, set_category=False):
                sess.add(row)
                stats['todos_updated'] += 1
            continue
        await _ensure_unclaimed(sess, Todo, 'todo', node.id)
        category_id = node.category_id
        if category_id not in own_category_ids:
            if category_id is not None:
                logger.warning('reconcile_flat: todo %s names unknown category %s; using default', node.id, category_id)
            category_id = default_category_id
        sess.add(_new_todo(checklist.id, node, category_id))
        stats['todos_inserted'] += 1
    await repo.flush_or_raise(sess)

    logger.info('reconcile_flat checklist=%s %s', checklist.id, dict(stats) or 'no changes')
    return await assemble_flat(sess, desired.project_id)
