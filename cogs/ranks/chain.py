"""Rank chain resolution, position lookup and pricing.

Everything here is pure: the functions take rank definitions or a resolved
``RankChain`` and never touch Discord, the ledger or the config file.
"""

import logging
from decimal import Decimal
from typing import Iterable, List, Mapping

from .constants import LAST_RANK
from .errors import ConfigurationInvalid
from .models import CostQuote, ProgressionStep, RankChain, RankDefinition

logger = logging.getLogger('ranks.chain')


def is_terminal(successor) -> bool:
    """True when a successor value ends the chain."""
    return not successor or str(successor).upper() == LAST_RANK


def find_start_rank(definitions: Mapping[str, RankDefinition]) -> str:
    """Name of the first rank (in table order) whose cost is exactly zero.

    Raises:
        ConfigurationInvalid: if the table is empty or has no zero-cost rank.
    """
    if not definitions:
        raise ConfigurationInvalid("No ranks defined")

    for name, definition in definitions.items():
        if definition.is_start:
            return name

    raise ConfigurationInvalid(
        "No rank has cost 0, so the start of the rank chain cannot be determined"
    )


def resolve_chain(definitions: Mapping[str, RankDefinition]) -> RankChain:
    """Follow successor links from the start rank and return the ordered chain.

    The walk stops at the terminal sentinel, at a successor that is not
    defined, or at the first repeated name. The last two are configuration
    mistakes and are logged, but the chain up to that point is still usable.
    """
    current = find_start_rank(definitions)
    order: List[RankDefinition] = []
    visited = set()

    while current is not None:
        if current in visited:
            logger.warning(
                f"Rank chain loops back to '{current}' after '{order[-1].name}'; "
                f"truncating at {len(order)} ranks"
            )
            break

        definition = definitions[current]
        order.append(definition)
        visited.add(current)

        successor = definition.successor
        if is_terminal(successor):
            break
        if successor not in definitions:
            logger.warning(f"Rank '{current}' points at undefined successor '{successor}'")
            break
        current = successor

    unreachable = [name for name in definitions if name not in visited]
    if unreachable:
        logger.warning(f"Ranks not reachable from '{order[0].name}': {', '.join(unreachable)}")

    return RankChain(tuple(order))


def locate_position(tokens: Iterable[str], chain: RankChain) -> int:
    """Index of the highest rank whose role the member holds, or 0 if none."""
    if len(chain) == 0:
        raise ConfigurationInvalid("Rank chain is empty")

    held = set(tokens)
    for index in range(chain.last_index, -1, -1):
        if chain[index].name in held:
            return index
    return 0


def cumulative_cost(chain: RankChain, from_index: int, to_index: int) -> CostQuote:
    """Total price of moving from ``from_index`` to ``to_index``.

    Ranks ``from_index + 1`` through ``to_index`` are summed. The first gated
    rank in that range stops the calculation; the quote then carries that
    rank and no amount.
    """
    if not 0 <= from_index < len(chain) or not 0 <= to_index < len(chain):
        raise IndexError(f"Rank range ({from_index}, {to_index}] outside chain of {len(chain)}")

    total = Decimal('0')
    for index in range(from_index + 1, to_index + 1):
        rank = chain[index]
        if rank.is_gated:
            return CostQuote(
                amount=Decimal('0'),
                gated=True,
                gating_rank=rank.name,
                gating_message=rank.cost_message,
            )
        total += rank.price
    return CostQuote(amount=total)


def step_cost(chain: RankChain, index: int) -> CostQuote:
    """Price of the single step out of ``index``."""
    return cumulative_cost(chain, index, index + 1)


def progression_view(chain: RankChain, current_index: int) -> List[ProgressionStep]:
    """Per-transition rows describing a member's progress through the chain."""
    steps = []
    for i in range(len(chain) - 1):
        rank = chain[i]
        next_rank = chain[i + 1]

        if i < current_index:
            status = 'completed'
        elif i == current_index:
            status = 'current'
        else:
            status = 'future'

        cumulative = None
        cumulative_gated = False
        if status != 'completed':
            quote = cumulative_cost(chain, current_index, i + 1)
            cumulative_gated = quote.gated
            if not quote.gated:
                cumulative = quote.amount

        steps.append(ProgressionStep(
            index=i,
            rank=rank.name,
            next_rank=next_rank.name,
            display=rank.display,
            next_display=next_rank.display,
            cost=next_rank.price,
            gated=next_rank.is_gated,
            cost_message=next_rank.cost_message,
            cumulative_cost=cumulative,
            cumulative_gated=cumulative_gated,
            status=status,
        ))
    return steps
