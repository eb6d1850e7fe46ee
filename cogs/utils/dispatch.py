# cogs/utils/dispatch.py

import logging
from typing import Optional

import discord
from discord.ext import commands

from cogs.managers.role_manager import RoleDirectory
from cogs.ranks.constants import CONSOLE_PREFIX
from cogs.ranks.formatters import strip_legacy_codes

logger = logging.getLogger('dispatch')


class CommandExecutor:
    """Runs promotion commands as the bot.

    ``role add <user> <role>`` and ``role remove <user> <role>`` are handled
    directly against the guild. Anything else is posted to the console
    bridge channel, where the game server's bridge picks it up.
    """

    def __init__(self, bot: commands.Bot, directory: RoleDirectory, console_channel_id: int = 0):
        self.bot = bot
        self.directory = directory
        self.console_channel_id = console_channel_id

    @property
    def guild(self) -> discord.Guild:
        return self.directory.guild

    async def dispatch(self, command: str) -> None:
        if command.startswith(CONSOLE_PREFIX):
            command = command[len(CONSOLE_PREFIX):]
        command = command.strip()
        if not command:
            return

        parts = command.split()
        if len(parts) >= 4 and parts[0].lower() == 'role' and parts[1].lower() in ('add', 'remove'):
            await self._run_role_command(parts[1].lower(), parts[2], ' '.join(parts[3:]))
            return

        await self._forward_to_console(command)

    async def _run_role_command(self, action: str, user: str, role_name: str):
        member = self.guild.get_member_named(user)
        if member is None:
            logger.error(f"Promotion command target '{user}' not found in guild {self.guild.id}")
            return

        if action == 'add':
            ok = await self.directory.add_role(member, role_name, reason="Rank promotion")
        else:
            ok = await self.directory.remove_role(member, role_name, reason="Rank promotion")

        if ok:
            logger.info(f"role {action} '{role_name}' for {member}")
        else:
            logger.error(f"Failed to {action} role '{role_name}' for {member}")

    async def _forward_to_console(self, command: str):
        channel = self.bot.get_channel(self.console_channel_id) if self.console_channel_id else None
        if channel is None:
            logger.error(f"Console channel {self.console_channel_id} not found; dropped command: {command}")
            return
        await channel.send(command)
        logger.info(f"Forwarded command to console: {command}")


class Announcer:
    """Rank-up broadcasts to the announcement channel and private notices by DM."""

    def __init__(self, bot: commands.Bot, channel_id: int = 0):
        self.bot = bot
        self.channel_id = channel_id

    def _channel(self) -> Optional[discord.abc.Messageable]:
        if not self.channel_id:
            return None
        return self.bot.get_channel(self.channel_id)

    async def send_to_all(self, message: str) -> None:
        channel = self._channel()
        if channel is None:
            logger.warning(f"Announcement channel {self.channel_id} not found; broadcast: {message}")
            return
        await channel.send(strip_legacy_codes(message))

    async def send_to_one(self, member: discord.Member, message: str) -> None:
        try:
            await member.send(strip_legacy_codes(message))
        except discord.Forbidden:
            logger.warning(f"Could not DM {member}: {message}")
