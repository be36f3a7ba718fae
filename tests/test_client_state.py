import pytest

from checklists import client_state as cs
from checklists.errors import NotFoundError, ConstraintViolation
from checklists.schemas import ChecklistTree, CategoryNode, TodoNode, TodoCreate


def _tree():
    return ChecklistTree(
        id='cl',
        title='Projektaufgaben',
        project_id='p',
        categories=[
            CategoryNode(id='a', name='A', position=0, todos=[TodoNode(id='t1', text='one', category_id='a')]),
            CategoryNode(id='b', name='B', position=1),
        ],
        uncategorized_todos=[TodoNode(id='t2', text='two')],
    )


def test_transforms_do_not_mutate_input():
    tree = _tree()
    snapshot = tree.model_dump()
    cs.create_category(tree, 'C')
    cs.delete_category(tree, 'a')
    cs.move_todo_to_category(tree, 't2', 'b')
    cs.update_todo(tree, 't1', {'text': 'changed'})
    assert tree.model_dump() == snapshot


def test_rename_checklist_ignores_blank_title():
    tree = _tree()
    assert cs.rename_checklist(tree, 'Kitchen').title == 'Kitchen'
    assert cs.rename_checklist(tree, '   ').title == 'Projektaufgaben'


def test_create_category_appends_with_next_position():
    out = cs.create_category(_tree(), 'Shopping', '#FF5733')
    new = out.categories[-1]
    assert (new.name, new.color, new.position, new.todos) == ('Shopping', '#FF5733', 2, [])
    assert new.id not in ('a', 'b')


def test_update_category_reorders_by_position():
    out = cs.update_category(_tree(), 'a', {'position': 5, 'name': 'Later', 'id': 'hacked'})
    assert [c.id for c in out.categories] == ['b', 'a']
    assert out.categories[1].name == 'Later'


def test_delete_category_moves_todos_to_bucket():
    out = cs.delete_category(_tree(), 'a')
    assert [c.id for c in out.categories] == ['b']
    assert [t.id for t in out.uncategorized_todos] == ['t2', 't1']
    assert out.uncategorized_todos[-1].category_id is None


def test_create_todo_in_category_and_bucket():
    tree = cs.create_todo(_tree(), TodoCreate(text='Buy milk', price='2,50'), 'a')
    milk = tree.categories[0].todos[-1]
    assert (milk.text, milk.price, milk.position, milk.category_id) == ('Buy milk', '2,50', 1, 'a')
    assert milk.completed is False

    tree = cs.create_todo(tree, 'loose')
    assert tree.uncategorized_todos[-1].text == 'loose'
    assert tree.uncategorized_todos[-1].position == 1


def test_create_todo_unknown_category_raises():
    with pytest.raises(NotFoundError):
        cs.create_todo(_tree(), 'x', 'missing')


def test_update_todo_patch_and_unknown_id():
    tree = _tree()
    out = cs.update_todo(tree, 't2', {'completed': True, 'notes': 'n'})
    assert out.uncategorized_todos[0].completed is True
    assert out.uncategorized_todos[0].notes == 'n'
    assert cs.update_todo(tree, 'missing', {'text': 'x'}).model_dump() == tree.model_dump()


def test_delete_todo():
    out = cs.delete_todo(_tree(), 't1')
    assert out.categories[0].todos == []
    assert cs.delete_todo(out, 't1').model_dump() == out.model_dump()


def test_move_todo_to_category():
    out = cs.move_todo_to_category(_tree(), 't1', 'b')
    assert out.categories[0].todos == []
    moved = out.categories[1].todos[0]
    assert (moved.id, moved.category_id, moved.position) == ('t1', 'b', 0)

    back = cs.move_todo_to_category(out, 't1', None)
    assert back.uncategorized_todos[-1].id == 't1'
    assert back.uncategorized_todos[-1].category_id is None


def test_move_todo_after_gap_takes_max_position_plus_one():
    tree = _tree()
    tree.categories[1].todos = [TodoNode(id='b0', text='b0', position=0), TodoNode(id='b2', text='b2', position=2)]
    out = cs.move_todo_to_category(tree, 't1', 'b')
    assert [(t.id, t.position) for t in out.categories[1].todos] == [('b0', 0), ('b2', 2), ('t1', 3)]

    out = cs.create_todo(out, 'new', 'b')
    assert out.categories[1].todos[-1].position == 4


def test_move_todo_to_unknown_category_keeps_todo():
    tree = _tree()
    with pytest.raises(NotFoundError):
        cs.move_todo_to_category(tree, 't1', 'missing')
    assert tree.categories[0].todos[0].id == 't1'


def test_flat_transforms():
    flat = cs.empty_flat('p')
    assert flat.title == 'Projektaufgaben'
    flat = cs.add_flat_todo(flat, 'one')
    flat = cs.add_flat_todo(flat, TodoCreate(text='two', price='', link=''))
    assert cs.add_flat_todo(flat, '   ') is flat
    assert [t.position for t in flat.todos] == [0, 1]
    assert flat.todos[1].price is None

    first = flat.todos[0].id
    flat = cs.toggle_flat_todo(flat, first)
    assert flat.todos[0].completed is True
    flat = cs.update_flat_todo(flat, flat.todos[1].id, {'text': 'zwei'})
    assert flat.todos[1].text == 'zwei'
    flat = cs.clear_completed(flat)
    assert [t.text for t in flat.todos] == ['zwei']
    flat = cs.remove_flat_todo(flat, flat.todos[0].id)
    assert flat.todos == []


@pytest.mark.asyncio
async def test_optimistic_editor_adopts_saved_tree():
    saved_trees = []

    async def saver(tree):
        saved_trees.append(tree)
        return tree.model_copy(update={'title': 'from server'})

    editor = cs.OptimisticEditor(_tree(), saver)
    out = await editor.create_category('Shopping')
    assert saved_trees[-1].categories[-1].name == 'Shopping'
    assert out.title == 'from server'
    assert editor.tree is out


@pytest.mark.asyncio
async def test_optimistic_editor_keeps_local_state_on_failure():
    async def saver(tree):
        raise ConstraintViolation('boom')

    editor = cs.OptimisticEditor(_tree(), saver)
    with pytest.raises(ConstraintViolation):
        await editor.delete_todo('t2')
    assert editor.tree.uncategorized_todos == []


@pytest.mark.asyncio
async def test_optimistic_editor_against_service(service):
    p = await service.create_project('P1')
    tree = await service.save_checklist_with_categories(cs.empty_tree(p.id))
    editor = cs.OptimisticEditor(tree, service.save_checklist_with_categories)

    await editor.create_category('Shopping', '#FF5733')
    cat_id = editor.tree.categories[0].id
    await editor.create_todo(TodoCreate(text='Buy milk', price='2,50'), cat_id)
    todo_id = editor.tree.categories[0].todos[0].id
    await editor.update_todo(todo_id, completed=True)
    await editor.update_category(cat_id, name='Groceries')
    await editor.rename('Kitchen')

    stored = await service.get_checklist_with_categories(p.id)
    assert stored.title == 'Kitchen'
    assert stored.categories[0].name == 'Groceries'
    assert stored.categories[0].todos[0].completed is True

    await editor.move_todo(todo_id, None)
    await editor.delete_category(cat_id)
    stored = await service.get_checklist_with_categories(p.id)
    assert stored.categories == []
    assert [t.id for t in stored.uncategorized_todos] == [todo_id]
