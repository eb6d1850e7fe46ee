"""Slash commands and member listeners for rank progression."""

import asyncio
import logging
from typing import List, Optional

import discord
from discord import app_commands
from discord.ext import commands

import config
from cogs.managers.promotion_manager import PromotionManager
from cogs.managers.role_manager import RoleDirectory
from cogs.utils.dispatch import Announcer, CommandExecutor

from .errors import ConfigurationInvalid, RankError
from .formatters import error_embed, help_embed, rank_list_embed, upgrade_embed
from .migration import MigrationManager

logger = logging.getLogger('ranks.cog')


class RanksCog(commands.Cog):
    """Rank list, upgrades, config reload and default-role migration."""

    ranks = app_commands.Group(
        name="ranks",
        description="Server rank progression",
        guild_only=True
    )

    def __init__(self, bot: commands.Bot):
        self.bot = bot
        self.rank_config = bot.services.get('rank_config')
        self.balance_store = bot.services.get('balance_store')
        self._guild: Optional[discord.Guild] = None
        self._ready = asyncio.Event()

        # Guild-bound services, built in on_ready
        self.directory: Optional[RoleDirectory] = None
        self.promotion_manager: Optional[PromotionManager] = None
        self.migration_manager: Optional[MigrationManager] = None

    async def cog_unload(self):
        if self.migration_manager:
            await self.migration_manager.stop()

    @commands.Cog.listener()
    async def on_ready(self):
        """Wire guild services and migrate members already in the server."""
        if self._ready.is_set():
            return

        self._guild = self.bot.get_guild(config.GUILD_ID)
        if not self._guild:
            logger.error(f"Could not find guild with ID {config.GUILD_ID}; ranks cog disabled")
            return

        self.directory = RoleDirectory(self._guild)
        executor = CommandExecutor(self.bot, self.directory, config.CONSOLE_CHANNEL_ID)
        self.promotion_manager = PromotionManager(
            ranks=self.rank_config,
            balance_store=self.balance_store,
            directory=self.directory,
            executor=executor,
            announcer=Announcer(self.bot, config.RANK_ANNOUNCE_CHANNEL_ID)
        )
        self.migration_manager = MigrationManager(self.rank_config, self.directory)
        self.bot.services.register('role_directory', self.directory)
        self.bot.services.register('command_executor', executor)
        self.bot.services.register('promotion_manager', self.promotion_manager)
        self.bot.services.register('migration_manager', self.migration_manager)

        self.migration_manager.start()
        self.migration_manager.sweep(self._guild.members)

        self._ready.set()
        logger.info("RanksCog is ready")

    @commands.Cog.listener()
    async def on_member_join(self, member: discord.Member):
        if member.bot or not self.migration_manager:
            return
        if self._guild and member.guild.id != self._guild.id:
            return
        self.migration_manager.schedule(member)

    async def _check_ready(self, interaction: discord.Interaction) -> bool:
        if self.promotion_manager is None:
            await interaction.response.send_message(
                embed=error_embed("Ranks are still starting up. Try again in a moment."),
                ephemeral=True
            )
            return False
        return True

    def _display_name(self, rank_name: str) -> str:
        chain = self.rank_config.chain
        index = chain.index_of(rank_name)
        return chain[index].display if index is not None else rank_name

    @ranks.command(name="list", description="Show all ranks and costs")
    async def ranks_list(self, interaction: discord.Interaction):
        if not await self._check_ready(interaction):
            return
        try:
            steps = self.promotion_manager.list_progression_view(interaction.user)
        except ConfigurationInvalid as e:
            await interaction.response.send_message(embed=error_embed(e.user_message), ephemeral=True)
            return
        await interaction.response.send_message(embed=rank_list_embed(steps), ephemeral=True)

    @ranks.command(name="help", description="Show rank command help")
    async def ranks_help(self, interaction: discord.Interaction):
        can_reload = interaction.permissions.manage_guild
        await interaction.response.send_message(embed=help_embed(can_reload), ephemeral=True)

    @ranks.command(name="next", description="Upgrade to the next rank")
    async def ranks_next(self, interaction: discord.Interaction):
        if not await self._check_ready(interaction):
            return
        await interaction.response.defer(ephemeral=True)
        try:
            result = await self.promotion_manager.advance_one_step(interaction.user)
        except RankError as e:
            await interaction.followup.send(embed=error_embed(e.user_message), ephemeral=True)
            return
        display = self._display_name(result.to_rank)
        await interaction.followup.send(embed=upgrade_embed(result, display), ephemeral=True)

    @ranks.command(name="upgrade", description="Upgrade to a specific rank, paying for every rank on the way")
    @app_commands.describe(rank="The rank to upgrade to")
    async def ranks_upgrade(self, interaction: discord.Interaction, rank: str):
        if not await self._check_ready(interaction):
            return
        await interaction.response.defer(ephemeral=True)
        try:
            result = await self.promotion_manager.advance_to_target(interaction.user, rank)
        except RankError as e:
            await interaction.followup.send(embed=error_embed(e.user_message), ephemeral=True)
            return
        display = self._display_name(result.to_rank)
        await interaction.followup.send(embed=upgrade_embed(result, display), ephemeral=True)

    @ranks_upgrade.autocomplete('rank')
    async def rank_autocomplete(self, interaction: discord.Interaction, current: str) -> List[app_commands.Choice[str]]:
        if not self.rank_config.loaded:
            return []
        current = current.lower()
        return [
            app_commands.Choice(name=name, value=name)
            for name in self.rank_config.chain.names
            if current in name.lower()
        ][:25]

    @ranks.command(name="reload", description="Reload the rank configuration")
    @app_commands.checks.has_permissions(manage_guild=True)
    async def ranks_reload(self, interaction: discord.Interaction):
        try:
            chain = self.rank_config.reload()
        except ConfigurationInvalid as e:
            await interaction.response.send_message(
                embed=error_embed(f"Configuration not reloaded: {e.user_message}"),
                ephemeral=True
            )
            return
        if self.directory:
            self.directory.clear_cache()
        logger.info(f"Rank configuration reloaded by {interaction.user} ({interaction.user.id})")
        await interaction.response.send_message(
            f"✅ Configuration reloaded! {len(chain)} ranks loaded.",
            ephemeral=True
        )
