# tests/test_task_matcher.py

import pytest

from task_matcher import index_by_title, match_tasks
from task_models import STATUS_COMPLETED, STATUS_NOT_STARTED, SinkRecord, iter_tasks

from .fakes import done, make_list, make_task


def record(record_id, title, status=STATUS_NOT_STARTED, archived=False):
    return SinkRecord(id=record_id, title=title, task_list_name='Inbox', status=status,
                      archived=archived)


def test_classifies_new_changed_unchanged_and_orphaned() -> None:
    lists = [make_list('Inbox', make_task('A'), done('B'), make_task('C'))]
    records = [
        record('r-b', 'B', STATUS_NOT_STARTED),
        record('r-c', 'C', STATUS_NOT_STARTED),
        record('r-d', 'D'),
    ]

    result = match_tasks(lists, records)

    assert [t.title for t in result.new] == ['A']
    assert [(m.task.title, m.record.id, m.fields) for m in result.changed] == [
        ('B', 'r-b', {'status': STATUS_COMPLETED}),
    ]
    assert [m.record.id for m in result.unchanged] == ['r-c']
    assert [r.id for r in result.orphaned] == ['r-d']
    assert sorted(r.id for r in result.matched_records) == ['r-b', 'r-c']


def test_status_derivation_treats_anything_but_completed_as_open() -> None:
    task = make_task('A', status='needsAction')
    odd = make_task('B', status='something-else')
    lists = [make_list('Inbox', task, odd)]
    records = [record('r-a', 'A', STATUS_COMPLETED), record('r-b', 'B', STATUS_NOT_STARTED)]

    result = match_tasks(lists, records)

    assert [m.fields for m in result.changed] == [{'status': STATUS_NOT_STARTED}]
    assert [m.record.id for m in result.unchanged] == ['r-b']


@pytest.mark.parametrize("lists, records", [
    ([], []),
    ([make_list('Inbox', make_task('A'))], []),
    ([], [record('r-1', 'A'), record('r-2', 'A')]),
    ([make_list('Work', make_task('A'), done('B')), make_list('Home', make_task('A'))],
     [record('r-1', 'A'), record('r-2', 'A', STATUS_COMPLETED), record('r-3', 'X')]),
    ([make_list('Inbox', done('A'), make_task('B'), make_task('C'))],
     [record('r-1', 'C', STATUS_COMPLETED), record('r-2', 'Z'), record('r-3', 'B')]),
])
def test_every_task_and_record_is_classified_exactly_once(lists, records) -> None:
    result = match_tasks(lists, records)

    task_ids = [id(t) for t in result.new] + [id(m.task) for m in result.pairs]
    assert sorted(task_ids) == sorted(id(t) for t in iter_tasks(lists))

    record_ids = [r.id for r in result.orphaned] + [r.id for r in result.matched_records]
    assert sorted(record_ids) == sorted(r.id for r in records)


def test_duplicate_record_titles_match_first_record_and_keep_the_rest() -> None:
    lists = [make_list('Inbox', done('A'))]
    records = [record('r-1', 'A'), record('r-2', 'A')]

    result = match_tasks(lists, records)

    assert [m.record.id for m in result.changed] == ['r-1']
    assert result.orphaned == []
    assert [r.id for r in result.matched_records] == ['r-1', 'r-2']


def test_same_title_in_two_lists_maps_to_one_record() -> None:
    lists = [make_list('Work', make_task('Call Bob')), make_list('Home', make_task('Call Bob'))]
    records = [record('r-1', 'Call Bob')]

    result = match_tasks(lists, records)

    assert result.new == []
    assert [m.record.id for m in result.unchanged] == ['r-1', 'r-1']


def test_first_task_sharing_a_record_owns_its_status() -> None:
    lists = [make_list('Work', make_task('Call Bob')), make_list('Home', done('Call Bob'))]
    records = [record('r-1', 'Call Bob')]

    result = match_tasks(lists, records)

    assert result.changed == []
    assert [(m.task.task_list_title, m.fields) for m in result.unchanged] == [
        ('Work', {}),
        ('Home', {}),
    ]


def test_first_task_sharing_a_record_can_still_change_it() -> None:
    lists = [make_list('Work', done('Call Bob')), make_list('Home', make_task('Call Bob'))]
    records = [record('r-1', 'Call Bob')]

    result = match_tasks(lists, records)

    assert [(m.task.task_list_title, m.fields) for m in result.changed] == [
        ('Work', {'status': STATUS_COMPLETED}),
    ]
    assert [m.task.task_list_title for m in result.unchanged] == ['Home']


def test_renamed_task_becomes_new_and_old_record_orphaned() -> None:
    lists = [make_list('Inbox', make_task('Buy oat milk', task_id='t-1'))]
    records = [record('r-1', 'Buy milk')]

    result = match_tasks(lists, records)

    assert [t.title for t in result.new] == ['Buy oat milk']
    assert [r.id for r in result.orphaned] == ['r-1']


def test_archived_records_do_not_take_part_in_matching() -> None:
    lists = [make_list('Inbox', make_task('A'))]
    records = [record('r-1', 'A', archived=True), record('r-2', 'B', archived=True)]

    result = match_tasks(lists, records)

    assert [t.title for t in result.new] == ['A']
    assert result.orphaned == []
    assert result.matched_records == []


def test_titles_must_match_exactly() -> None:
    lists = [make_list('Inbox', make_task('Pay rent'))]
    records = [record('r-1', 'pay rent'), record('r-2', 'Pay rent ')]

    result = match_tasks(lists, records)

    assert [t.title for t in result.new] == ['Pay rent']
    assert [r.id for r in result.orphaned] == ['r-1', 'r-2']


def test_linked_task_keeps_its_record_across_rename() -> None:
    lists = [make_list('Inbox', done('Buy oat milk', task_id='t-1'))]
    records = [record('r-1', 'Buy milk')]

    result = match_tasks(lists, records, links={'t-1': 'r-1'})

    assert result.new == []
    assert result.orphaned == []
    assert len(result.changed) == 1
    match = result.changed[0]
    assert match.by_link
    assert match.fields == {'status': STATUS_COMPLETED, 'title': 'Buy oat milk'}


def test_links_fall_back_to_title_for_unlinked_tasks() -> None:
    lists = [make_list('Inbox', make_task('A', task_id='t-1'), make_task('B', task_id='t-2'))]
    records = [record('r-1', 'A'), record('r-2', 'B')]

    result = match_tasks(lists, records, links={'t-1': 'r-1', 't-gone': 'r-9'})

    assert [(m.task.id, m.record.id, m.by_link) for m in result.unchanged] == [
        ('t-1', 'r-1', True),
        ('t-2', 'r-2', False),
    ]


def test_links_give_duplicate_titled_tasks_their_own_records() -> None:
    lists = [make_list('Work', make_task('Call Bob', task_id='t-1')),
             make_list('Home', make_task('Call Bob', task_id='t-2'))]
    records = [record('r-1', 'Call Bob')]

    result = match_tasks(lists, records, links={})

    assert [m.task.id for m in result.unchanged] == ['t-1']
    assert [t.id for t in result.new] == ['t-2']


def test_link_to_missing_record_falls_back_to_title() -> None:
    lists = [make_list('Inbox', make_task('A', task_id='t-1'))]
    records = [record('r-2', 'A')]

    result = match_tasks(lists, records, links={'t-1': 'r-1'})

    assert [(m.record.id, m.by_link) for m in result.unchanged] == [('r-2', False)]


def test_index_by_title_keeps_first_record() -> None:
    index = index_by_title([record('r-1', 'A'), record('r-2', 'A'), record('r-3', 'B')])

    assert {title: r.id for title, r in index.items()} == {'A': 'r-1', 'B': 'r-3'}
