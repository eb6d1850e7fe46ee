"""Collaborator contracts for the rank engine.

The promotion and migration managers only talk to the ledger, the role
directory, the command bridge and the announcer through these protocols.
The Discord and Coda implementations live in ``cogs.managers`` and
``cogs.utils``; tests supply in-memory fakes.
"""

from decimal import Decimal
from typing import Any, Optional, Protocol, Set

from .models import RankChain


class BalanceStore(Protocol):
    async def get_balance(self, member_id: int) -> Decimal: ...

    async def debit(self, member_id: int, amount: Decimal, description: str = '') -> bool: ...


class Membership(Protocol):
    member_id: int
    tokens: Set[str]


class GroupDirectory(Protocol):
    def tokens_for(self, member: Any) -> Set[str]: ...

    async def load_membership(self, member_id: int) -> Optional[Membership]: ...

    def remove_token(self, membership: Membership, token: str) -> None: ...

    def add_token(self, membership: Membership, token: str) -> None: ...

    async def save(self, membership: Membership) -> bool: ...


class CommandSink(Protocol):
    async def dispatch(self, command: str) -> None: ...


class MessageSink(Protocol):
    async def send_to_all(self, message: str) -> None: ...

    async def send_to_one(self, member: Any, message: str) -> None: ...


class RankSource(Protocol):
    @property
    def chain(self) -> RankChain: ...

    @property
    def default_group(self) -> str: ...

    def reload(self) -> RankChain: ...
