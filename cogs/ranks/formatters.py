"""Embed and text formatting for the ranks cog."""

import re
from typing import List

import discord

from .constants import (
    COLOR_ERROR, COLOR_INFO, COLOR_SUCCESS, DIVIDER, LIST_COST_MESSAGE
)
from .models import ProgressionStep, UpgradeResult, format_money

LEGACY_CODE_PATTERN = re.compile(r'[&§][0-9a-fk-or]', re.IGNORECASE)


def strip_legacy_codes(text: str) -> str:
    """Remove ``&a``/``§a`` style colour and format codes."""
    return LEGACY_CODE_PATTERN.sub('', text)


def format_step(step: ProgressionStep) -> str:
    """One line of the rank list."""
    display = strip_legacy_codes(step.display)
    next_display = strip_legacy_codes(step.next_display)

    if step.is_completed:
        return f"~~{display} > {next_display}~~ | **COMPLETED**"

    line = f"{display} > {next_display} | "
    if step.gated:
        line += step.cost_message or LIST_COST_MESSAGE
    else:
        line += format_money(step.cost)
        if (
            not step.is_current
            and not step.cumulative_gated
            and step.cumulative_cost is not None
            and step.cumulative_cost > 0
        ):
            line += f" | **{format_money(step.cumulative_cost)}**"

    if step.is_current:
        line += " ⬅"
    return line


def rank_list_embed(steps: List[ProgressionStep]) -> discord.Embed:
    embed = discord.Embed(title="Server Ranks", color=COLOR_INFO)
    if steps:
        embed.description = "\n".join(format_step(step) for step in steps)
    else:
        embed.description = "There is only one rank."
    embed.set_footer(text="Cost to next rank | total cost from your rank")
    return embed


def help_embed(can_reload: bool) -> discord.Embed:
    lines = [
        "`/ranks list` - Show all ranks and costs",
        "`/ranks next` - Upgrade to next rank",
        "`/ranks upgrade <rank>` - Upgrade to specified rank",
    ]
    if can_reload:
        lines.append("`/ranks reload` - Reload configuration")
    return discord.Embed(
        title="Ranks Help",
        description=f"{DIVIDER}\n" + "\n".join(lines) + f"\n{DIVIDER}",
        color=COLOR_INFO
    )


def upgrade_embed(result: UpgradeResult, display: str) -> discord.Embed:
    embed = discord.Embed(
        title="Rank Upgraded",
        description=f"You are now **{strip_legacy_codes(display)}**.",
        color=COLOR_SUCCESS
    )
    if len(result.traversed) > 1:
        embed.add_field(name="Ranks Gained", value=" > ".join(result.traversed), inline=False)
    embed.add_field(name="Cost", value=format_money(result.amount), inline=True)
    embed.add_field(name="Balance", value=format_money(result.balance_after), inline=True)
    return embed


def error_embed(message: str) -> discord.Embed:
    return discord.Embed(description=f"❌ {message}", color=COLOR_ERROR)
