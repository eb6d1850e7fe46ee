"""Data models for the rank progression system."""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, Iterator, Optional, Tuple

from .constants import GATED_COST, START_COST


def format_money(amount: Decimal) -> str:
    """Format an amount as ``$1,234.5`` with at most two decimals."""
    quantized = Decimal(amount).quantize(Decimal('0.01'))
    text = f"{quantized:,.2f}".rstrip('0').rstrip('.')
    return f"${text}"


@dataclass(frozen=True)
class RankDefinition:
    """One rank as declared in the rank table.

    ``cost`` is the price to move into this rank from its predecessor. It is
    ``None`` when the table omits it, which prices as zero but never marks
    the start rank.
    ``cost_message`` is ``None`` when unset; the rank list and the upgrade
    error each fall back to their own wording.
    """
    name: str
    cost: Optional[Decimal] = None
    successor: Optional[str] = None
    cost_message: Optional[str] = None
    promotion_commands: Tuple[str, ...] = ()
    promotion_broadcast: Tuple[str, ...] = ()
    display_name: str = ''

    @property
    def price(self) -> Decimal:
        return self.cost if self.cost is not None else Decimal('0')

    @property
    def is_gated(self) -> bool:
        return self.cost is not None and self.cost == GATED_COST

    @property
    def is_start(self) -> bool:
        return self.cost is not None and self.cost == START_COST

    @property
    def display(self) -> str:
        return self.display_name or self.name


@dataclass(frozen=True)
class RankChain:
    """Resolved, ordered rank sequence with a name lookup table."""
    ranks: Tuple[RankDefinition, ...]
    _index: Dict[str, int] = field(default_factory=dict, repr=False, compare=False)

    def __post_init__(self):
        lookup = {rank.name: i for i, rank in enumerate(self.ranks)}
        object.__setattr__(self, '_index', lookup)

    def __len__(self) -> int:
        return len(self.ranks)

    def __iter__(self) -> Iterator[RankDefinition]:
        return iter(self.ranks)

    def __getitem__(self, index: int) -> RankDefinition:
        return self.ranks[index]

    @property
    def names(self) -> Tuple[str, ...]:
        return tuple(rank.name for rank in self.ranks)

    @property
    def first(self) -> RankDefinition:
        return self.ranks[0]

    @property
    def last_index(self) -> int:
        return len(self.ranks) - 1

    def index_of(self, name: str) -> Optional[int]:
        """Index of ``name``, matching exactly first and then ignoring case."""
        if name in self._index:
            return self._index[name]
        lowered = name.lower()
        for rank_name, index in self._index.items():
            if rank_name.lower() == lowered:
                return index
        return None


@dataclass(frozen=True)
class CostQuote:
    """Price of moving across a contiguous range of the chain."""
    amount: Decimal
    gated: bool = False
    gating_rank: Optional[str] = None
    gating_message: Optional[str] = None


@dataclass(frozen=True)
class ProgressionStep:
    """One ``rank -> next_rank`` row of a member's progression view."""
    index: int
    rank: str
    next_rank: str
    display: str
    next_display: str
    cost: Decimal
    gated: bool
    cost_message: Optional[str]
    cumulative_cost: Optional[Decimal]
    cumulative_gated: bool
    status: str

    @property
    def is_completed(self) -> bool:
        return self.status == 'completed'

    @property
    def is_current(self) -> bool:
        return self.status == 'current'


@dataclass(frozen=True)
class UpgradeResult:
    """Outcome of a successful rank purchase."""
    member_id: int
    from_rank: str
    to_rank: str
    traversed: Tuple[str, ...]
    amount: Decimal
    balance_before: Decimal

    @property
    def balance_after(self) -> Decimal:
        return self.balance_before - self.amount
