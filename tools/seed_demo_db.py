"""Seed a small deterministic demo database.

Creates two projects with categorized checklists (including a couple of
priced todos) so the API has something to show. Projects that already
exist by name are left alone, so the script can be re-run.

Usage:
  export DATABASE_URL="sqlite+aiosqlite:///./checklists.db"
  python3 tools/seed_demo_db.py
"""
import asyncio
import logging

from sqlmodel import select

from checklists.db import init_db, async_session
from checklists.models import Project
from checklists.service import ChecklistService
from checklists.client_state import empty_tree, create_category, create_todo
from checklists.schemas import TodoCreate

logger = logging.getLogger(__name__)
logging.basicConfig(level=logging.INFO)

DEMO = {
    'Badsanierung': [
        ('Einkauf', '#FF5733', [('Fliesen', '249,90'), ('Silikon', '6,49'), ('Fugenmasse', None)]),
        ('Handwerker', '#3366FF', [('Installateur anrufen', None)]),
    ],
    'Gartenhaus': [
        ('Material', '#33AA55', [('Dachpappe', '39,00'), ('Schrauben', '4,20')]),
    ],
}


async def main():
    await init_db()
    svc = ChecklistService(async_session)
    async with async_session() as sess:
        res = await sess.exec(select(Project.name))
        existing = set(res.all())
    for name, categories in DEMO.items():
        if name in existing:
            logger.info('skipping existing project %r', name)
            continue
        p = await svc.create_project(name)
        tree = empty_tree(p.id)
        for cat_name, color, todos in categories:
            tree = create_category(tree, cat_name, color)
            cat_id = tree.categories[-1].id
            for text, price in todos:
                tree = create_todo(tree, TodoCreate(text=text, price=price), cat_id)
        saved = await svc.save_checklist_with_categories(tree)
        logger.info('seeded %r with %d categories', name, len(saved.categories))


if __name__ == '__main__':
    asyncio.run(main())
