"""Integration Tests: PromotionManager purchase flow against in-memory collaborators.

Covers:
    - One-step and multi-step upgrades debit the summed cost once
    - Validation failures (max rank, unknown target, not an advance, gated, funds)
      leave the ledger, the roles and the announcer untouched
    - Debit refusal or error surfaces as ExternalDebitFailed with no promotion
    - Balance read failures surface as BalanceUnavailable before any debit
    - Each purchase reads the ledger row as it is now, not an earlier figure
    - Side effects run debit first, then each traversed rank's commands then
      broadcast, in chain order, with %player% substituted
"""

from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from cogs.managers.promotion_manager import PromotionManager
from cogs.ranks.errors import (
    AlreadyMaxRank, BalanceUnavailable, ConfigurationInvalid, ExternalDebitFailed, InsufficientFunds,
    InvalidTarget, NotAnAdvance, RankGated
)
from cogs.utils.coda_api import CodaRequestError
from cogs.utils.economy import CodaBalanceStore
from cogs.utils.rank_config import RankConfigStore

from conftest import (
    FakeBalanceStore, FakeDirectory, RecordingSink, STANDARD_RANKS, rank_table
)


def _manager(rank_store, events, roles, balance):
    store = FakeBalanceStore(events, {42: balance})
    directory = FakeDirectory({42: roles})
    sink = RecordingSink(events)
    manager = PromotionManager(
        ranks=rank_store,
        balance_store=store,
        directory=directory,
        executor=sink,
        announcer=sink,
    )
    return manager, store


# ─── Successful upgrades ─────────────────────────────────────


async def test_one_step_with_exact_balance(rank_store, events, member):
    manager, store = _manager(rank_store, events, {'mortal'}, 1000)

    result = await manager.advance_one_step(member)

    assert result.from_rank == 'mortal'
    assert result.to_rank == 'adept'
    assert result.amount == Decimal('1000')
    assert result.balance_after == Decimal('0')
    assert store.balances[42] == Decimal('0')
    assert store.debits == [(42, Decimal('1000'), 'Rank upgrade mortal -> adept')]


async def test_member_without_rank_roles_starts_at_first_rank(rank_store, events, member):
    manager, _ = _manager(rank_store, events, set(), 1000)
    result = await manager.advance_one_step(member)
    assert result.from_rank == 'mortal'


async def test_multi_step_pays_sum_once(rank_store, events, member):
    manager, store = _manager(rank_store, events, {'mortal', 'adept'}, 30000)

    result = await manager.advance_to_target(member, 'paragon')

    assert result.traversed == ('hero', 'paragon')
    assert result.amount == Decimal('25000')
    assert len(store.debits) == 1
    assert store.balances[42] == Decimal('5000')


async def test_target_matches_case_insensitively(rank_store, events, member):
    manager, _ = _manager(rank_store, events, {'mortal'}, 1000)
    result = await manager.advance_to_target(member, 'ADEPT')
    assert result.to_rank == 'adept'


async def test_zero_cost_step_skips_debit(tmp_path, events, member):
    store = RankConfigStore(str(tmp_path / 'ranks.yaml'))
    store.load_data(rank_table({
        'guest': {'cost': 0, 'nextrank': 'member'},
        'member': {'cost': 0},
    }))
    manager, balances = _manager(store, events, {'guest'}, 0)

    result = await manager.advance_one_step(member)

    assert result.to_rank == 'member'
    assert balances.debits == []


# ─── Side effects ────────────────────────────────────────────


async def test_side_effect_order(tmp_path, events, member):
    store = RankConfigStore(str(tmp_path / 'ranks.yaml'))
    store.load_data(rank_table({
        'mortal': {'cost': 0, 'nextrank': 'adept'},
        'adept': {
            'cost': 100,
            'nextrank': 'hero',
            'executecmds': ['[console] give %player% sword', 'role add %player% adept'],
            'broadcast': ['%player% is an adept'],
        },
        'hero': {'cost': 200, 'display': 'Hero', 'executecmds': ['role add %player% hero']},
    }))
    manager, _ = _manager(store, events, {'mortal'}, 300)

    await manager.advance_to_target(member, 'hero')

    assert events == [
        ('debit', 42, Decimal('300')),
        ('command', '[console] give Steve sword'),
        ('command', 'role add Steve adept'),
        ('broadcast', 'Steve is an adept'),
        ('command', 'role add Steve hero'),
        ('private', 42, 'You have been promoted to Hero!'),
    ]


# ─── Refusals ────────────────────────────────────────────────


async def test_insufficient_funds_for_multi_step(rank_store, events, member):
    manager, store = _manager(rank_store, events, {'adept'}, 6000)

    with pytest.raises(InsufficientFunds) as excinfo:
        await manager.advance_to_target(member, 'paragon')

    assert excinfo.value.required == Decimal('25000')
    assert excinfo.value.available == Decimal('6000')
    assert '$25,000' in excinfo.value.user_message
    assert events == []


async def test_already_max_rank(rank_store, events, member):
    manager, _ = _manager(rank_store, events, {'paragon'}, 100000)
    with pytest.raises(AlreadyMaxRank):
        await manager.advance_one_step(member)
    assert events == []


async def test_unknown_target(rank_store, events, member):
    manager, _ = _manager(rank_store, events, {'mortal'}, 100000)
    with pytest.raises(InvalidTarget):
        await manager.advance_to_target(member, 'emperor')
    assert events == []


@pytest.mark.parametrize('target', ['adept', 'mortal'])
async def test_target_at_or_below_current(rank_store, events, member, target):
    manager, _ = _manager(rank_store, events, {'adept'}, 100000)
    with pytest.raises(NotAnAdvance):
        await manager.advance_to_target(member, target)
    assert events == []


async def test_gated_rank_blocks_path(tmp_path, events, member):
    store = RankConfigStore(str(tmp_path / 'ranks.yaml'))
    store.load_data(rank_table({
        'mortal': {'cost': 0, 'nextrank': 'adept'},
        'adept': {'cost': 1000, 'nextrank': 'hero'},
        'hero': {'cost': -1, 'nextrank': 'paragon', 'cost-message': 'Invite only'},
        'paragon': {'cost': 20000},
    }))
    manager, _ = _manager(store, events, {'adept'}, 100000)

    with pytest.raises(RankGated) as excinfo:
        await manager.advance_to_target(member, 'paragon')

    assert excinfo.value.rank == 'hero'
    assert 'Invite only' in excinfo.value.user_message
    assert "'hero' is in the path" in excinfo.value.user_message
    assert events == []


async def test_gated_next_rank_shows_its_message(tmp_path, events, member):
    store = RankConfigStore(str(tmp_path / 'ranks.yaml'))
    store.load_data(rank_table({
        'mortal': {'cost': 0, 'nextrank': 'hero'},
        'hero': {'cost': -1, 'cost-message': 'Invite only'},
    }))
    manager, _ = _manager(store, events, {'mortal'}, 100000)

    with pytest.raises(RankGated) as excinfo:
        await manager.advance_one_step(member)
    assert excinfo.value.user_message == 'Invite only'


async def test_refused_debit_promotes_nothing(rank_store, events, member):
    manager, store = _manager(rank_store, events, {'mortal'}, 5000)
    store.refuse = True

    with pytest.raises(ExternalDebitFailed):
        await manager.advance_one_step(member)

    assert events == [('debit', 42, Decimal('1000'))]


async def test_debit_error_is_wrapped(rank_store, events, member):
    manager, store = _manager(rank_store, events, {'mortal'}, 5000)
    store.error = RuntimeError('ledger offline')

    with pytest.raises(ExternalDebitFailed) as excinfo:
        await manager.advance_one_step(member)

    assert isinstance(excinfo.value.__cause__, RuntimeError)
    assert events == [('debit', 42, Decimal('1000'))]


async def test_unloaded_config(tmp_path, events, member):
    manager, _ = _manager(RankConfigStore(str(tmp_path / 'ranks.yaml')), events, set(), 0)
    with pytest.raises(ConfigurationInvalid):
        await manager.advance_one_step(member)


# ─── Read-only views ─────────────────────────────────────────


def test_current_rank_and_view(rank_store, events, member):
    manager, _ = _manager(rank_store, events, {'mortal', 'hero'}, 0)
    assert manager.current_rank(member).name == 'hero'
    assert manager.current_standing(member) == 2

    steps = manager.list_progression_view(member)
    assert [s.status for s in steps] == ['completed', 'completed', 'current']


async def test_gated_rank_without_message_uses_default(tmp_path, events, member):
    store = RankConfigStore(str(tmp_path / 'ranks.yaml'))
    store.load_data(rank_table({
        'mortal': {'cost': 0, 'nextrank': 'hero'},
        'hero': {'cost': -1},
    }))
    manager, _ = _manager(store, events, {'mortal'}, 100000)

    with pytest.raises(RankGated) as excinfo:
        await manager.advance_one_step(member)
    assert excinfo.value.user_message == 'This rank cannot be purchased with currency.'


async def test_balance_lookup_failure(rank_store, events, member):
    manager, store = _manager(rank_store, events, {'mortal'}, 5000)
    store.read_error = CodaRequestError('503: unavailable', status=503)

    with pytest.raises(BalanceUnavailable) as excinfo:
        await manager.advance_one_step(member)

    assert isinstance(excinfo.value.__cause__, CodaRequestError)
    assert 'could not be checked' in excinfo.value.user_message
    assert events == []


# ─── Coda ledger ─────────────────────────────────────────────


async def test_purchase_sees_payment_made_between_attempts(rank_store, events, member):
    ledger = {'balance': '$500'}

    async def get_rows(doc_id, table_id, query=None, limit=None):
        return [{'id': 'i-row1', 'values': {'Discord User ID': '42', 'Balance': ledger['balance']}}]

    client = MagicMock()
    client.get_rows = AsyncMock(side_effect=get_rows)
    client.update_row = AsyncMock(return_value={})
    client.insert_rows = AsyncMock(return_value={})

    sink = RecordingSink(events)
    manager = PromotionManager(
        ranks=rank_store,
        balance_store=CodaBalanceStore(client, 'doc', 'accounts'),
        directory=FakeDirectory({42: {'mortal'}}),
        executor=sink,
        announcer=sink,
    )

    with pytest.raises(InsufficientFunds) as excinfo:
        await manager.advance_one_step(member)
    assert excinfo.value.available == Decimal('500')

    ledger['balance'] = '$5,000'
    result = await manager.advance_one_step(member)

    assert result.balance_before == Decimal('5000')
    assert result.balance_after == Decimal('4000')
    client.update_row.assert_awaited_once_with(
        'doc', 'accounts', 'i-row1', [{'column': 'Balance', 'value': '4000'}]
    )
