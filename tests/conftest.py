"""Shared fixtures for the rank engine tests.

Fakes:
    - FakeMember: id, name and a bot flag, enough for the managers and the worker
    - FakeBalanceStore: in-memory ledger that records debits and can refuse or raise
    - FakeDirectory: role directory over a dict of member id -> role names
    - RecordingSink: CommandSink + MessageSink that log every call into one shared list

The shared ``events`` list lets tests assert the order of side effects
across the ledger, the command bridge and the announcer.
"""

import os
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Optional, Set

import pytest

# config.py refuses to import without these
os.environ.setdefault('DISCORD_BOT_TOKEN', 'test-token')
os.environ.setdefault('GUILD_ID', '1234')
os.environ.setdefault('CODA_API_TOKEN', 'test-coda-token')
os.environ.setdefault('DOC_ID', 'doc-test')
os.environ.setdefault('ACCOUNTS_TABLE_ID', 'grid-accounts')

from cogs.utils.rank_config import RankConfigStore


def rank_table(ranks, defaultgroup='default'):
    return {
        'defaultpath': 'default',
        'defaultgroup': defaultgroup,
        'Ranks': {'default': ranks},
    }


STANDARD_RANKS = {
    'mortal': {'cost': 0, 'nextrank': 'adept'},
    'adept': {'cost': 1000, 'nextrank': 'hero'},
    'hero': {'cost': 5000, 'nextrank': 'paragon'},
    'paragon': {'cost': 20000, 'nextrank': 'LASTRANK'},
}


@dataclass
class FakeMember:
    id: int
    name: str
    bot: bool = False

    def __str__(self):
        return self.name


@dataclass
class FakeMembership:
    member_id: int
    tokens: Set[str]
    to_add: List[str] = field(default_factory=list)
    to_remove: List[str] = field(default_factory=list)


class FakeBalanceStore:
    def __init__(self, events: List, balances: Optional[Dict[int, Decimal]] = None):
        self.events = events
        self.balances = {k: Decimal(v) for k, v in (balances or {}).items()}
        self.refuse = False
        self.error: Optional[Exception] = None
        self.read_error: Optional[Exception] = None
        self.debits = []

    async def get_balance(self, member_id):
        if self.read_error is not None:
            raise self.read_error
        return self.balances.get(member_id, Decimal('0'))

    async def debit(self, member_id, amount, description=''):
        self.debits.append((member_id, amount, description))
        self.events.append(('debit', member_id, amount))
        if self.error is not None:
            raise self.error
        if self.refuse:
            return False
        self.balances[member_id] = self.balances.get(member_id, Decimal('0')) - amount
        return True


class FakeDirectory:
    def __init__(self, roles: Optional[Dict[int, Set[str]]] = None):
        self.roles = {k: set(v) for k, v in (roles or {}).items()}
        self.save_result = True
        self.saved = []

    def tokens_for(self, member):
        return set(self.roles.get(member.id, set()))

    async def load_membership(self, member_id):
        if member_id not in self.roles:
            return None
        return FakeMembership(member_id=member_id, tokens=set(self.roles[member_id]))

    def remove_token(self, membership, token):
        membership.tokens.discard(token)
        membership.to_remove.append(token)

    def add_token(self, membership, token):
        membership.tokens.add(token)
        membership.to_add.append(token)

    async def save(self, membership):
        self.saved.append(membership)
        if self.save_result:
            self.roles[membership.member_id] = set(membership.tokens)
        return self.save_result


class RecordingSink:
    def __init__(self, events: List):
        self.events = events

    async def dispatch(self, command):
        self.events.append(('command', command))

    async def send_to_all(self, message):
        self.events.append(('broadcast', message))

    async def send_to_one(self, member, message):
        self.events.append(('private', member.id, message))


@pytest.fixture
def events():
    return []


@pytest.fixture
def rank_store(tmp_path):
    store = RankConfigStore(str(tmp_path / 'ranks.yaml'))
    store.load_data(rank_table(STANDARD_RANKS))
    return store


@pytest.fixture
def member():
    return FakeMember(id=42, name='Steve')
