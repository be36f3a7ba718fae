"""Assemble the nested (categorized) and flat checklist view models from rows."""
from typing import Optional
import logging

from . import repository as repo
from .models import Category, Todo
from .schemas import (
    TodoNode,
    CategoryNode,
    ChecklistTree,
    FlatChecklist,
    ChecklistTotals,
    ContainerTotals,
)
from .utils import sum_open_prices, format_price, parse_price

logger = logging.getLogger(__name__)


def todo_node(t: Todo) -> TodoNode:
    return TodoNode(
        id=t.id,
        text=t.text,
        completed=bool(t.completed),
        link=t.link,
        price=t.price,
        notes=t.notes,
        position=t.position or 0,
        category_id=t.category_id,
    )


def build_tree(checklist, categories: list[Category], todos: list[Todo]) -> ChecklistTree:
    """Partition ordered todos into their categories and the uncategorized bucket.

    `todos` must already be in (position, created_at) order; each category's
    sequence keeps that order. A todo pointing at a category that is not in
    `categories` is shown in the uncategorized bucket.
    """
    by_category: dict[str, list[TodoNode]] = {c.id: [] for c in categories}
    uncategorized: list[TodoNode] = []
    for t in todos:
        node = todo_node(t)
        if t.category_id is not None and t.category_id in by_category:
            by_category[t.category_id].append(node)
        else:
            if t.category_id is not None:
                logger.warning('todo %s references unknown category %s; showing as uncategorized', t.id, t.category_id)
                node.category_id = None
            uncategorized.append(node)
    return ChecklistTree(
        id=checklist.id,
        title=checklist.title,
        project_id=checklist.project_id,
        categories=[
            CategoryNode(
                id=c.id,
                name=c.name,
                color=c.color,
                position=c.position or 0,
                todos=by_category[c.id],
            )
            for c in categories
        ],
        uncategorized_todos=uncategorized,
    )


async def assemble_categorized(sess, project_id: str) -> Optional[ChecklistTree]:
    """Return the project's checklist grouped by category, or None when the
    project has no checklist yet (the caller should initialize one)."""
    checklist = await repo.find_checklist_for_project(sess, project_id)
    if checklist is None:
        return None
    categories = await repo.list_categories(sess, checklist.id)
    todos = await repo.list_todos(sess, checklist.id)
    return build_tree(checklist, categories, todos)


async def assemble_flat(sess, project_id: str) -> Optional[FlatChecklist]:
    """Return the project's checklist as one flat ordered todo sequence."""
    checklist = await repo.find_checklist_for_project(sess, project_id)
    if checklist is None:
        return None
    todos = await repo.list_todos(sess, checklist.id)
    return FlatChecklist(
        id=checklist.id,
        title=checklist.title,
        project_id=checklist.project_id,
        todos=[todo_node(t) for t in todos],
    )


def _container_totals(todos: list[TodoNode], category_id=None, name=None) -> ContainerTotals:
    open_total = sum_open_prices(todos)
    return ContainerTotals(
        category_id=category_id,
        name=name,
        open_total=open_total,
        open_total_formatted=format_price(open_total),
        open_count=sum(1 for t in todos if not t.completed),
        completed_count=sum(1 for t in todos if t.completed),
        priced_open_count=sum(1 for t in todos if not t.completed and parse_price(t.price) != 0),
    )


def summarize(tree: ChecklistTree) -> ChecklistTotals:
    """Open (uncompleted) price totals per category and for the whole checklist."""
    cats = [_container_totals(c.todos, c.id, c.name) for c in tree.categories]
    bucket = _container_totals(tree.uncategorized_todos)
    grand = sum(c.open_total for c in cats) + bucket.open_total
    return ChecklistTotals(
        checklist_id=tree.id,
        categories=cats,
        uncategorized=bucket,
        open_total=grand,
        open_total_formatted=format_price(grand),
    )
