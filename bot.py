import asyncio
import logging
import logging.handlers

import discord
from discord import app_commands
from discord.ext import commands

import config
from cogs.ranks.errors import ConfigurationInvalid
from cogs.utils.coda_api import CodaAPIClient
from cogs.utils.economy import CodaBalanceStore
from cogs.utils.rank_config import RankConfigStore

LOG_FILE = 'bot.log'
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
CONSOLE_FORMAT = '%(asctime)s - %(levelname)s - %(message)s'

logger = logging.getLogger('bot')

##############################################################################
# Logging
##############################################################################
def setup_logging():
    """Rotating file log plus console output, with discord.py's chatter turned down."""
    level = getattr(logging, config.LOG_LEVEL, logging.INFO)

    file_handler = logging.handlers.RotatingFileHandler(
        LOG_FILE, maxBytes=5 * 1024 * 1024, backupCount=5, encoding='utf-8'
    )
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT))

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(level)
    for handler in (file_handler, console_handler):
        handler.setLevel(level)
        root.addHandler(handler)

    for name, name_level in config.LOGGER_LEVELS.items():
        logging.getLogger(name).setLevel(name_level)

##############################################################################
# Services
##############################################################################
class ServiceRegistry:
    """Named services shared between the bot and its cogs."""

    def __init__(self):
        self._services = {}

    def register(self, name, service):
        self._services[name] = service
        logger.info(f"Registered service: {name}")

    def get(self, name):
        service = self._services.get(name)
        if service is None:
            logger.warning(f"Service not found: {name}")
        return service

    def has(self, name):
        return name in self._services

##############################################################################
# Bot
##############################################################################
APP_COMMAND_ERRORS = {
    app_commands.MissingPermissions: "❌ You don't have permission to use this command.",
    app_commands.BotMissingPermissions: "❌ I'm missing the required permissions to perform this action.",
    app_commands.NoPrivateMessage: "❌ This command can only be used in a server.",
}


class RankBot(commands.Bot):
    def __init__(self):
        intents = discord.Intents.default()
        intents.members = True
        super().__init__(command_prefix=commands.when_mentioned, intents=intents)

        self.guild_id = config.GUILD_ID
        self.initial_extensions = ['cogs.ranks']

        self.services = ServiceRegistry()
        self.coda_client = CodaAPIClient(config.CODA_API_TOKEN)
        self.services.register('coda_client', self.coda_client)
        self.services.register('balance_store', CodaBalanceStore(
            client=self.coda_client,
            doc_id=config.DOC_ID,
            accounts_table_id=config.ACCOUNTS_TABLE_ID,
            transactions_table_id=config.TRANSACTIONS_TABLE_ID
        ))
        self.services.register('rank_config', RankConfigStore(config.RANKS_CONFIG_PATH))

        self.tree.on_error = self.on_app_command_error

    async def setup_hook(self):
        # A broken rank file leaves the commands reporting it until /ranks reload succeeds
        try:
            self.services.get('rank_config').load()
        except ConfigurationInvalid as e:
            logger.error(f"Starting without ranks: {e}")

        for extension in self.initial_extensions:
            try:
                await self.load_extension(extension)
                logger.info(f"Loaded extension '{extension}'")
            except commands.ExtensionError as e:
                logger.error(f"Failed to load extension {extension}: {e}")

        guild = discord.Object(id=self.guild_id)
        self.tree.copy_global_to(guild=guild)
        synced = await self.tree.sync(guild=guild)
        logger.info(f"Synced {len(synced)} commands to guild {self.guild_id}")

    async def on_ready(self):
        logger.info(f"Logged in as {self.user} (ID: {self.user.id})")

    async def on_app_command_error(self, interaction: discord.Interaction, error: app_commands.AppCommandError):
        message = next(
            (text for kind, text in APP_COMMAND_ERRORS.items() if isinstance(error, kind)),
            "An error occurred while processing the command."
        )
        command_name = interaction.command.name if interaction.command else 'unknown'
        logger.error(f"App command error in {command_name}: {error}", exc_info=error)

        try:
            if interaction.response.is_done():
                await interaction.followup.send(message, ephemeral=True)
            else:
                await interaction.response.send_message(message, ephemeral=True)
        except discord.HTTPException as e:
            logger.error(f"Could not send error message to user: {e}")

    async def close(self):
        logger.info("Shutting down rank services")
        if self.services.has('migration_manager'):
            await self.services.get('migration_manager').stop()
        await self.coda_client.close()
        await super().close()


async def main():
    setup_logging()
    async with RankBot() as bot:
        await bot.start(config.DISCORD_BOT_TOKEN)


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Bot shutdown by user")
