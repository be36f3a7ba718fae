import pytest

from checklists import config
from checklists import repository as repo
from checklists.client_state import empty_tree, empty_flat
from checklists.errors import ConstraintViolation
from checklists.schemas import ChecklistTree, CategoryNode, TodoNode, FlatChecklist


def _shopping_tree(project_id):
    return ChecklistTree(
        id='cl-1',
        title='Projektaufgaben',
        project_id=project_id,
        categories=[
            CategoryNode(id='cat-shop', name='Shopping', color='#FF5733', position=0, todos=[
                TodoNode(id='t-milk', text='Buy milk', price='2,50', position=0),
                TodoNode(id='t-eggs', text='Eggs', position=1),
            ]),
            CategoryNode(id='cat-tools', name='Tools', position=1),
        ],
        uncategorized_todos=[TodoNode(id='t-loose', text='Call plumber')],
    )


def _shape(tree):
    """Order-sensitive structural view of a tree."""
    return (
        tree.id,
        tree.title,
        [(c.id, c.name, c.color, c.position, [(t.id, t.text, t.completed, t.price, t.position) for t in c.todos]) for c in tree.categories],
        [(t.id, t.text, t.completed, t.price, t.position) for t in tree.uncategorized_todos],
    )


@pytest.mark.asyncio
async def test_initialize_empty_checklist(service):
    p = await service.create_project('P1')
    assert await service.get_checklist_with_categories(p.id) is None

    saved = await service.save_checklist_with_categories(empty_tree(p.id))
    assert saved.title == 'Projektaufgaben'
    assert saved.categories == []
    assert saved.uncategorized_todos == []

    again = await service.get_checklist_with_categories(p.id)
    assert again.id == saved.id


@pytest.mark.asyncio
async def test_save_then_load_matches_snapshot(service):
    p = await service.create_project('P1')
    desired = _shopping_tree(p.id)
    saved = await service.save_checklist_with_categories(desired)
    assert _shape(saved) == _shape(desired)
    loaded = await service.get_checklist_with_categories(p.id)
    assert _shape(loaded) == _shape(desired)
    # container decides category_id
    assert loaded.categories[0].todos[0].category_id == 'cat-shop'
    assert loaded.uncategorized_todos[0].category_id is None


@pytest.mark.asyncio
async def test_reconcile_is_idempotent(service):
    p = await service.create_project('P1')
    first = await service.save_checklist_with_categories(_shopping_tree(p.id))
    second = await service.save_checklist_with_categories(first)
    assert _shape(second) == _shape(first)


@pytest.mark.asyncio
async def test_move_todo_between_categories(service):
    p = await service.create_project('P1')
    tree = await service.save_checklist_with_categories(_shopping_tree(p.id))
    milk = tree.categories[0].todos.pop(0)
    tree.categories[1].todos.append(milk)

    saved = await service.save_checklist_with_categories(tree)
    assert [t.id for t in saved.categories[0].todos] == ['t-eggs']
    assert [t.id for t in saved.categories[1].todos] == ['t-milk']
    assert saved.categories[1].todos[0].category_id == 'cat-tools'


@pytest.mark.asyncio
async def test_moved_todo_lands_last_despite_position_gap(service):
    from checklists.client_state import move_todo_to_category, delete_todo

    p = await service.create_project('P1')
    tree = ChecklistTree(
        id='cl-gap',
        title='T',
        project_id=p.id,
        categories=[
            CategoryNode(id='cat-a', name='A', position=0, todos=[TodoNode(id='old-in-a', text='old')]),
            CategoryNode(id='cat-b', name='B', position=1, todos=[
                TodoNode(id='b0', text='b0', position=0),
                TodoNode(id='b1', text='b1', position=1),
                TodoNode(id='b2', text='b2', position=2),
            ]),
        ],
    )
    tree = await service.save_checklist_with_categories(tree)
    tree = await service.save_checklist_with_categories(delete_todo(tree, 'b1'))

    tree = move_todo_to_category(tree, 'old-in-a', 'cat-b')
    saved = await service.save_checklist_with_categories(tree)
    assert [t.id for t in saved.categories[1].todos] == ['b0', 'b2', 'old-in-a']
    assert saved.categories[1].todos[-1].position == 3


@pytest.mark.asyncio
async def test_removed_category_is_deleted_and_todos_removed_with_it(service):
    p = await service.create_project('P1')
    tree = await service.save_checklist_with_categories(_shopping_tree(p.id))
    tree.categories = [c for c in tree.categories if c.id != 'cat-shop']

    saved = await service.save_checklist_with_categories(tree)
    assert [c.id for c in saved.categories] == ['cat-tools']
    # todos absent from the snapshot are deleted too
    all_ids = {t.id for c in saved.categories for t in c.todos} | {t.id for t in saved.uncategorized_todos}
    assert all_ids == {'t-loose'}


@pytest.mark.asyncio
async def test_removed_category_todos_kept_when_moved_to_bucket(service):
    p = await service.create_project('P1')
    tree = await service.save_checklist_with_categories(_shopping_tree(p.id))
    shop = tree.categories.pop(0)
    tree.uncategorized_todos.extend(shop.todos)

    saved = await service.save_checklist_with_categories(tree)
    assert {t.id for t in saved.uncategorized_todos} == {'t-loose', 't-milk', 't-eggs'}
    assert all(t.category_id is None for t in saved.uncategorized_todos)


@pytest.mark.asyncio
async def test_last_writer_wins_on_category_fields(service):
    p = await service.create_project('P1')
    tree = await service.save_checklist_with_categories(_shopping_tree(p.id))
    tree.categories[0].name = 'Groceries'
    tree.categories[0].color = None
    tree.title = 'Renamed'

    saved = await service.save_checklist_with_categories(tree)
    assert saved.title == 'Renamed'
    assert saved.categories[0].name == 'Groceries'
    assert saved.categories[0].color is None


@pytest.mark.asyncio
async def test_failed_reconcile_leaves_store_untouched(service):
    p = await service.create_project('P1')
    before = await service.save_checklist_with_categories(_shopping_tree(p.id))

    broken = before.model_copy(deep=True)
    broken.title = 'Should not stick'
    broken.categories.append(CategoryNode(id='cat-new', name='New'))
    # same todo twice in one snapshot
    broken.categories[1].todos.append(broken.categories[0].todos[0].model_copy())

    with pytest.raises(ConstraintViolation):
        await service.save_checklist_with_categories(broken)

    after = await service.get_checklist_with_categories(p.id)
    assert _shape(after) == _shape(before)


@pytest.mark.asyncio
async def test_blank_category_name_rejected(service):
    p = await service.create_project('P1')
    tree = empty_tree(p.id)
    tree.categories.append(CategoryNode(name='  '))
    with pytest.raises(ConstraintViolation):
        await service.save_checklist_with_categories(tree)
    assert await service.get_checklist_with_categories(p.id) is None


@pytest.mark.asyncio
async def test_checklist_of_another_project_rejected(service):
    p1 = await service.create_project('P1')
    p2 = await service.create_project('P2')
    tree = await service.save_checklist_with_categories(empty_tree(p1.id))
    hijack = tree.model_copy(update={'project_id': p2.id})
    with pytest.raises(ConstraintViolation):
        await service.save_checklist_with_categories(hijack)


@pytest.mark.asyncio
async def test_todo_id_owned_by_other_checklist_rejected(service):
    p1 = await service.create_project('P1')
    p2 = await service.create_project('P2')
    await service.save_checklist_with_categories(_shopping_tree(p1.id))
    other = empty_tree(p2.id)
    other.uncategorized_todos.append(TodoNode(id='t-milk', text='steal'))
    with pytest.raises(ConstraintViolation):
        await service.save_checklist_with_categories(other)


@pytest.mark.asyncio
async def test_flat_save_creates_default_category(service):
    p = await service.create_project('P1')
    flat = empty_flat(p.id)
    flat.todos.append(TodoNode(id='t1', text='Tiles', price='40'))

    saved = await service.save_checklist(flat)
    assert [t.id for t in saved.todos] == ['t1']

    tree = await service.get_checklist_with_categories(p.id)
    assert [c.name for c in tree.categories] == [config.DEFAULT_CATEGORY_NAME]
    assert [t.id for t in tree.categories[0].todos] == ['t1']


@pytest.mark.asyncio
async def test_flat_save_keeps_existing_category_and_deletes_missing(service):
    p = await service.create_project('P1')
    await service.save_checklist_with_categories(_shopping_tree(p.id))
    flat = await service.get_checklist_with_todos(p.id)

    flat.todos = [t for t in flat.todos if t.id != 't-eggs']
    for t in flat.todos:
        if t.id == 't-milk':
            t.completed = True
    saved = await service.save_checklist(flat)
    assert {t.id for t in saved.todos} == {'t-milk', 't-loose'}

    tree = await service.get_checklist_with_categories(p.id)
    milk = tree.categories[0].todos[0]
    assert milk.id == 't-milk'
    assert milk.completed is True
    assert [t.id for t in tree.uncategorized_todos] == ['t-loose']


@pytest.mark.asyncio
async def test_flat_new_todo_with_foreign_category_uses_first_category(service):
    p = await service.create_project('P1')
    await service.save_checklist_with_categories(_shopping_tree(p.id))
    flat = await service.get_checklist_with_todos(p.id)
    flat.todos.append(TodoNode(id='t-new', text='Nails', category_id='does-not-exist'))

    await service.save_checklist(flat)
    tree = await service.get_checklist_with_categories(p.id)
    assert 't-new' in [t.id for t in tree.categories[0].todos]


@pytest.mark.asyncio
async def test_flat_duplicate_ids_rejected(service):
    p = await service.create_project('P1')
    flat = FlatChecklist(title='T', project_id=p.id, todos=[TodoNode(id='x', text='a'), TodoNode(id='x', text='b')])
    with pytest.raises(ConstraintViolation):
        await service.save_checklist(flat)


@pytest.mark.asyncio
async def test_reconcile_uses_repository_delete_semantics(sess):
    # reconcile() works on a caller-provided session and only flushes
    from checklists.reconcile import reconcile

    p = await repo.create_project(sess, 'P')
    tree = await reconcile(sess, _shopping_tree(p.id))
    assert [c.id for c in tree.categories] == ['cat-shop', 'cat-tools']
    tree.categories = []
    tree.uncategorized_todos = []
    tree = await reconcile(sess, tree)
    assert tree.categories == []
    assert await repo.list_todos(sess, tree.id) == []
