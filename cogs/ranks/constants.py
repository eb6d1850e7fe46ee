"""Constants for the ranks cog."""

from decimal import Decimal

# Successor value that ends the chain
LAST_RANK = 'LASTRANK'

# Cost sentinels
START_COST = Decimal('0')
GATED_COST = Decimal('-1')

# Rank table selection
DEFAULT_PATH = 'default'
DEFAULT_GROUP = 'default'

# Template placeholders
PLAYER_PLACEHOLDER = '%player%'
CONSOLE_PREFIX = '[console] '

# Default messages
DEFAULT_COST_MESSAGE = 'This rank cannot be purchased with currency.'
LIST_COST_MESSAGE = 'Not available for purchase'
PROMOTED_MESSAGE = 'You have been promoted to {display}!'

# Transaction ledger
TRANSACTION_TYPE = 'rank_upgrade'

# Embed colours
COLOR_INFO = 0xF1C40F
COLOR_SUCCESS = 0x2ECC71
COLOR_ERROR = 0xE74C3C

DIVIDER = '━' * 32
