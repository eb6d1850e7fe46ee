# cogs/managers/promotion_manager.py

import discord
import logging
from decimal import Decimal
from typing import List

from cogs.ranks.chain import cumulative_cost, locate_position, progression_view
from cogs.ranks.constants import PLAYER_PLACEHOLDER, PROMOTED_MESSAGE
from cogs.ranks.errors import (
    AlreadyMaxRank, BalanceUnavailable, ExternalDebitFailed, InsufficientFunds, InvalidTarget,
    NotAnAdvance, RankGated
)
from cogs.ranks.interfaces import (
    BalanceStore, CommandSink, GroupDirectory, MessageSink, RankSource
)
from cogs.ranks.models import ProgressionStep, RankChain, RankDefinition, UpgradeResult

logger = logging.getLogger('promotion_manager')


class PromotionManager:
    """Sells rank upgrades: validates, prices, debits, then promotes.

    Validation and pricing never touch the ledger or the guild. Once the
    debit succeeds every traversed rank's promotion runs in chain order and
    nothing is rolled back if one of those steps fails.
    """

    def __init__(
        self,
        ranks: RankSource,
        balance_store: BalanceStore,
        directory: GroupDirectory,
        executor: CommandSink,
        announcer: MessageSink
    ):
        self.ranks = ranks
        self.balance_store = balance_store
        self.directory = directory
        self.executor = executor
        self.announcer = announcer

    def resolve_chain(self) -> RankChain:
        return self.ranks.chain

    def current_standing(self, member: discord.Member) -> int:
        return locate_position(self.directory.tokens_for(member), self.ranks.chain)

    def current_rank(self, member: discord.Member) -> RankDefinition:
        return self.ranks.chain[self.current_standing(member)]

    def list_progression_view(self, member: discord.Member) -> List[ProgressionStep]:
        chain = self.ranks.chain
        return progression_view(chain, locate_position(self.directory.tokens_for(member), chain))

    async def advance_one_step(self, member: discord.Member) -> UpgradeResult:
        """Buy the rank directly after the member's current one.

        Raises:
            AlreadyMaxRank: the member holds the last rank.
            RankGated, BalanceUnavailable, InsufficientFunds, ExternalDebitFailed:
                see ``_purchase``.
        """
        chain = self.ranks.chain
        current = locate_position(self.directory.tokens_for(member), chain)
        if current >= chain.last_index:
            raise AlreadyMaxRank()
        return await self._purchase(member, chain, current, current + 1)

    async def advance_to_target(self, member: discord.Member, target_name: str) -> UpgradeResult:
        """Buy every rank up to and including ``target_name``.

        Raises:
            InvalidTarget: the rank is not part of the chain.
            NotAnAdvance: the member already holds that rank or a higher one.
            RankGated, BalanceUnavailable, InsufficientFunds, ExternalDebitFailed:
                see ``_purchase``.
        """
        chain = self.ranks.chain
        current = locate_position(self.directory.tokens_for(member), chain)

        target = chain.index_of(target_name)
        if target is None:
            raise InvalidTarget(target_name)
        if target <= current:
            raise NotAnAdvance(chain[target].name, chain[current].name)
        return await self._purchase(member, chain, current, target)

    async def _purchase(self, member: discord.Member, chain: RankChain, current: int, target: int) -> UpgradeResult:
        target_rank = chain[target]

        quote = cumulative_cost(chain, current, target)
        if quote.gated:
            raise RankGated(quote.gating_rank, quote.gating_message, target=target_rank.name)

        try:
            balance = await self.balance_store.get_balance(member.id)
        except Exception as e:
            logger.error(f"Balance lookup for {member} raised: {e}")
            raise BalanceUnavailable(member.id) from e
        if balance < quote.amount:
            raise InsufficientFunds(quote.amount, balance)

        if quote.amount > 0:
            description = f"Rank upgrade {chain[current].name} -> {target_rank.name}"
            try:
                debited = await self.balance_store.debit(member.id, quote.amount, description)
            except Exception as e:
                logger.error(f"Debit of {quote.amount} for {member} raised: {e}")
                raise ExternalDebitFailed(member.id, quote.amount) from e
            if not debited:
                raise ExternalDebitFailed(member.id, quote.amount)

        traversed = tuple(chain[i].name for i in range(current + 1, target + 1))
        logger.info(
            f"{member} ({member.id}) bought {' > '.join(traversed)} "
            f"from {chain[current].name} for {quote.amount}"
        )

        for index in range(current + 1, target + 1):
            await self.apply_promotion(member, chain[index])

        return UpgradeResult(
            member_id=member.id,
            from_rank=chain[current].name,
            to_rank=target_rank.name,
            traversed=traversed,
            amount=quote.amount,
            balance_before=Decimal(balance),
        )

    async def apply_promotion(self, member: discord.Member, rank: RankDefinition) -> None:
        """Run one rank's promotion commands and announce it."""
        name = member.name
        for command in rank.promotion_commands:
            await self.executor.dispatch(command.replace(PLAYER_PLACEHOLDER, name))

        if rank.promotion_broadcast:
            for line in rank.promotion_broadcast:
                await self.announcer.send_to_all(line.replace(PLAYER_PLACEHOLDER, name))
        else:
            await self.announcer.send_to_one(member, PROMOTED_MESSAGE.format(display=rank.display))
