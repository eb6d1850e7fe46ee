# cogs/utils/rank_config.py

import logging
import os
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from cogs.ranks.chain import resolve_chain
from cogs.ranks.constants import (
    DEFAULT_GROUP, DEFAULT_PATH, GATED_COST, LAST_RANK
)
from cogs.ranks.errors import ConfigurationInvalid
from cogs.ranks.models import RankChain, RankDefinition

logger = logging.getLogger('rank_config')

DEFAULT_RANKS_CONFIG = {
    'defaultpath': DEFAULT_PATH,
    'defaultgroup': DEFAULT_GROUP,
    'Ranks': {
        DEFAULT_PATH: {
            'mortal': {
                'cost': 0,
                'nextrank': 'adept',
                'display': '&7Mortal',
            },
            'adept': {
                'cost': 1000,
                'nextrank': 'hero',
                'display': '&aAdept',
                'executecmds': [
                    'role add %player% adept',
                ],
                'broadcast': [
                    '&e%player% &7has ranked up to &aAdept&7!',
                ],
            },
            'hero': {
                'cost': 5000,
                'nextrank': 'paragon',
                'display': '&bHero',
                'executecmds': [
                    'role add %player% hero',
                ],
            },
            'paragon': {
                'cost': 20000,
                'nextrank': LAST_RANK,
                'display': '&6Paragon',
                'executecmds': [
                    'role add %player% paragon',
                ],
                'broadcast': [
                    '&6%player% &7reached the final rank, &6Paragon&7!',
                ],
            },
        }
    }
}


class RankEntry(BaseModel):
    """Validation model for one rank section of the YAML table."""
    model_config = ConfigDict(populate_by_name=True, extra='ignore')

    cost: Optional[Decimal] = None
    nextrank: Optional[str] = None
    cost_message: Optional[str] = Field(default=None, alias='cost-message')
    executecmds: List[str] = Field(default_factory=list)
    broadcast: List[str] = Field(default_factory=list)
    display: Optional[str] = None

    @field_validator('cost', mode='before')
    @classmethod
    def parse_cost(cls, v):
        """Read YAML ints and floats through their text form to keep Decimal exact."""
        if v is None or v == '':
            return None
        if isinstance(v, bool):
            raise ValueError('cost must be a number')
        try:
            return Decimal(str(v))
        except InvalidOperation:
            raise ValueError(f'cost must be a number, got {v!r}')

    @field_validator('cost')
    @classmethod
    def check_cost(cls, v):
        if v is not None and v < 0 and v != GATED_COST:
            raise ValueError(f'cost {v} is negative; only -1 (not purchasable) is allowed')
        return v

    @field_validator('nextrank', mode='before')
    @classmethod
    def parse_nextrank(cls, v):
        if v is None:
            return None
        return str(v)

    @field_validator('executecmds', 'broadcast', mode='before')
    @classmethod
    def parse_lines(cls, v):
        if v is None:
            return []
        if isinstance(v, str):
            return [v]
        return [str(line) for line in v]

    def to_definition(self, name: str) -> RankDefinition:
        successor = self.nextrank
        if successor is not None and successor.upper() == LAST_RANK:
            successor = None
        return RankDefinition(
            name=name,
            cost=self.cost,
            successor=successor,
            cost_message=self.cost_message,
            promotion_commands=tuple(self.executecmds),
            promotion_broadcast=tuple(self.broadcast),
            display_name=self.display or name,
        )


def parse_rank_table(data: Dict[str, Any]) -> Dict[str, RankDefinition]:
    """Build rank definitions from a loaded config document.

    Raises:
        ConfigurationInvalid: if the active table is missing or any rank fails validation.
    """
    if not isinstance(data, dict):
        raise ConfigurationInvalid("Rank configuration must be a mapping")

    default_path = str(data.get('defaultpath', DEFAULT_PATH))
    tables = data.get('Ranks') or {}
    section = tables.get(default_path) if isinstance(tables, dict) else None
    if not section or not isinstance(section, dict):
        raise ConfigurationInvalid(f"No ranks configured under 'Ranks.{default_path}'")

    definitions = {}
    for name, values in section.items():
        name = str(name)
        if not isinstance(values, dict):
            raise ConfigurationInvalid(f"Rank '{name}' must be a mapping of settings")
        try:
            entry = RankEntry.model_validate(values)
        except ValidationError as e:
            raise ConfigurationInvalid(f"Rank '{name}' is invalid: {e}") from e
        definitions[name] = entry.to_definition(name)
    return definitions


class RankConfigStore:
    """Loads the YAML rank table and keeps the resolved chain.

    The chain is rebuilt only by ``load``/``reload``. A failed reload leaves
    the previously loaded table in place.
    """

    def __init__(self, path: str):
        self.path = path
        self._definitions: Dict[str, RankDefinition] = {}
        self._chain: Optional[RankChain] = None
        self._default_group = DEFAULT_GROUP

    @property
    def loaded(self) -> bool:
        return self._chain is not None

    @property
    def chain(self) -> RankChain:
        if self._chain is None:
            raise ConfigurationInvalid()
        return self._chain

    @property
    def definitions(self) -> Dict[str, RankDefinition]:
        return dict(self._definitions)

    @property
    def default_group(self) -> str:
        return self._default_group

    def _read_file(self) -> Dict[str, Any]:
        """Read the config file, writing the default table if it doesn't exist."""
        if not os.path.exists(self.path):
            directory = os.path.dirname(self.path)
            if directory:
                os.makedirs(directory, exist_ok=True)
            with open(self.path, 'w', encoding='utf-8') as f:
                yaml.safe_dump(DEFAULT_RANKS_CONFIG, f, sort_keys=False)
            logger.info(f"Wrote default rank configuration to {self.path}")

        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                return yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationInvalid(f"Could not parse {self.path}: {e}") from e

    def load_data(self, data: Dict[str, Any]) -> RankChain:
        """Validate a config document and swap it in."""
        definitions = parse_rank_table(data)
        chain = resolve_chain(definitions)
        default_group = str(data.get('defaultgroup', DEFAULT_GROUP))

        self._definitions = definitions
        self._chain = chain
        self._default_group = default_group
        logger.info(f"Loaded {len(chain)} ranks: {' > '.join(chain.names)}")
        return chain

    def reload(self) -> RankChain:
        try:
            return self.load_data(self._read_file())
        except ConfigurationInvalid as e:
            if self._chain is not None:
                logger.error(f"Rank configuration reload failed, keeping previous ranks: {e}")
            else:
                logger.error(f"Rank configuration invalid: {e}")
            raise

    load = reload
