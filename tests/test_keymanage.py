from __future__ import annotations

import pytest

from conftest import FakeCredentialStore
from vbclone.errors import PreconditionError
from vbclone.keymanage import (
    delete_by_prefix,
    delete_by_title,
    format_table,
    interactive_delete,
    list_mode,
    parse_selection,
)


def _answers(*values):
    it = iter(values)
    return lambda prompt: next(it)


def test_self_delete_matches_exact_title_only() -> None:
    store = FakeCredentialStore([('1', 'vm-a'), ('2', 'vm-ab')])
    result = delete_by_title(store, 'vm-a', assume_yes=True)
    assert result.deleted == ['1']
    assert store.deleted == ['1']


def test_self_delete_duplicate_titles_take_first() -> None:
    # Known limitation: the store may hold duplicate titles; only the first goes.
    store = FakeCredentialStore([('5', 'vm-a'), ('6', 'vm-a')])
    delete_by_title(store, 'vm-a', assume_yes=True)
    assert store.deleted == ['5']


def test_self_delete_no_match(capsys) -> None:
    store = FakeCredentialStore([('2', 'vm-ab')])
    result = delete_by_title(store, 'vm-a', assume_yes=True)
    assert result.ok and result.deleted == []
    assert 'No key found with title: vm-a' in capsys.readouterr().out


def test_self_delete_declined() -> None:
    store = FakeCredentialStore([('1', 'vm-a')])
    delete_by_title(store, 'vm-a', input_fn=_answers('n'))
    assert store.deleted == []


def test_prefix_delete_confirms_once() -> None:
    store = FakeCredentialStore([('1', 'lab-1'), ('2', 'lab-2'), ('3', 'prod')])
    prompts = []

    def answer(prompt):
        prompts.append(prompt)
        return 'y'

    result = delete_by_prefix(store, 'lab-', input_fn=answer)
    assert result.deleted == ['1', '2']
    assert prompts == ['Delete ALL matched keys? (y/N): ']


def test_prefix_delete_requires_prefix() -> None:
    with pytest.raises(PreconditionError, match='--match requires PREFIX'):
        delete_by_prefix(FakeCredentialStore(), '', assume_yes=True)


def test_batch_continues_past_failures(capsys) -> None:
    store = FakeCredentialStore(
        [('1', 'lab-1'), ('2', 'lab-2'), ('3', 'lab-3')], fail_ids={'2'}
    )
    result = delete_by_prefix(store, 'lab-', assume_yes=True)
    assert result.deleted == ['1', '3']
    assert result.failed == ['2']
    assert not result.ok
    assert 'Failed to delete key id=2' in capsys.readouterr().out


def test_interactive_delete_by_number(capsys) -> None:
    store = FakeCredentialStore([('10', 'a'), ('11', 'b'), ('12', 'c')])
    result = interactive_delete(store, input_fn=_answers('3 1', 'yes'))
    assert result.deleted == ['12', '10']
    out = capsys.readouterr().out
    assert 'Selected: id=12 title=c' in out
    assert out.rstrip().endswith('Done.')


def test_interactive_delete_nothing_selected(capsys) -> None:
    store = FakeCredentialStore([('10', 'a')])
    result = interactive_delete(store, input_fn=_answers('  '))
    assert result.ok and store.deleted == []
    assert 'Nothing selected.' in capsys.readouterr().out


def test_interactive_delete_out_of_range() -> None:
    store = FakeCredentialStore([('10', 'a')])
    with pytest.raises(PreconditionError, match='Out of range: 2'):
        interactive_delete(store, input_fn=_answers('2'))
    assert store.deleted == []


def test_parse_selection_rejects_words() -> None:
    with pytest.raises(PreconditionError, match='Invalid selection: x'):
        parse_selection('1 x', 3)
    with pytest.raises(PreconditionError, match='Out of range: 0'):
        parse_selection('0', 3)


def test_list_mode(capsys) -> None:
    list_mode(FakeCredentialStore())
    assert 'No SSH keys found.' in capsys.readouterr().out
    list_mode(FakeCredentialStore([('7', 'vm-a')]))
    assert ' 1. 7  |  vm-a' in capsys.readouterr().out


def test_format_table() -> None:
    table = format_table([])
    assert table.splitlines() == ['', 'GitHub SSH keys:', '----------------']
