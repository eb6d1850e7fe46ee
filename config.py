# config.py

import os
from dotenv import load_dotenv

load_dotenv()


def require(var_name):
    """Value of a required environment variable."""
    value = os.getenv(var_name)
    if value is None:
        raise ValueError(f"{var_name} environment variable is not set.")
    return value


def get_int(var_name, default=None):
    """Integer setting; required when no default is given (0 disables a channel)."""
    raw = os.getenv(var_name)
    if raw is None:
        if default is None:
            raise ValueError(f"{var_name} environment variable is not set.")
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{var_name} must be an integer.")


DISCORD_BOT_TOKEN = require('DISCORD_BOT_TOKEN')

# First ID wins when a comma-separated list is given
_guild_ids = require('GUILD_ID')
try:
    GUILD_ID = int(_guild_ids.split(',')[0].strip())
except ValueError:
    raise ValueError("GUILD_ID must be an integer.")

# Rank table and the channels promotions talk to
RANKS_CONFIG_PATH = os.getenv('RANKS_CONFIG_PATH', 'config/ranks.yaml')
RANK_ANNOUNCE_CHANNEL_ID = get_int('RANK_ANNOUNCE_CHANNEL_ID', 0)
CONSOLE_CHANNEL_ID = get_int('CONSOLE_CHANNEL_ID', 0)

# Coda ledger
CODA_API_TOKEN = require('CODA_API_TOKEN')
DOC_ID = require('DOC_ID')
ACCOUNTS_TABLE_ID = require('ACCOUNTS_TABLE_ID')
TRANSACTIONS_TABLE_ID = os.getenv('TRANSACTIONS_TABLE_ID') or None

LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO').upper()
if LOG_LEVEL not in ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'):
    print(f"Invalid LOG_LEVEL {LOG_LEVEL!r}, defaulting to INFO")
    LOG_LEVEL = 'INFO'

LOGGER_LEVELS = {
    'discord': 'WARNING',
    'discord.http': 'WARNING',
    'discord.gateway': 'WARNING',
    'aiohttp': 'WARNING',
}
