"""
Command gate for economy-changing slash commands.

Allowed: the bot owner, guild administrators and members holding the
configured leader role.
"""

import discord
from discord import app_commands

from medalbot.config import Config


def is_leader_member(user) -> bool:
    if user.id == Config.OWNER_DISCORD_ID:
        return True
    if not isinstance(user, discord.Member):
        return False
    if user.guild_permissions.administrator:
        return True
    return any(role.name == Config.LEADER_ROLE_NAME for role in user.roles)


def leader_only():
    """app_commands check: owner, administrator or leader role."""
    async def predicate(interaction: discord.Interaction) -> bool:
        return is_leader_member(interaction.user)
    return app_commands.check(predicate)
