import discord
from discord.ext import commands
from discord import app_commands
from typing import Optional

from medalbot.config import Config
from medalbot.operations.event_operations import EventOperations, EventOperationError
from medalbot.operations.player_operations import PlayerOperations, PlayerOperationError
from medalbot.operations.score_operations import (
    ScoreOperations, build_review_rows, approve_high_confidence, build_commit_payload
)
from medalbot.utils.exceptions import MedalEconomyError
from medalbot.utils.numeric_ocr import parse_scores_from_text
from medalbot.utils.permissions import leader_only
from medalbot.utils.logger import setup_logger

logger = setup_logger(__name__)

class ScoreCog(commands.Cog):
    """Roster, events and score import"""

    def __init__(self, bot):
        self.bot = bot
        self.event_ops = EventOperations(bot.db)
        self.player_ops = PlayerOperations(bot.db)
        self.score_ops = ScoreOperations(bot.db)
        self.logger = logger

    def _setting(self, key: str, default):
        if self.bot.config_service is None:
            return default
        return self.bot.config_service.get(key, default)

    @app_commands.command(name="create-event", description="Create a new event")
    @app_commands.describe(name="Event name")
    @leader_only()
    async def create_event(self, interaction: discord.Interaction, name: str):
        try:
            event = await self.event_ops.create_event(name, created_by=interaction.user.id)
        except EventOperationError as e:
            await interaction.response.send_message(f"❌ {e}", ephemeral=True)
            return
        await interaction.response.send_message(f"📅 Event **{event.name}** created for {event.event_date}.")

    @app_commands.command(name="add-player", description="Add a player to the roster")
    @app_commands.describe(name="Canonical name", aliases="Comma-separated alternative spellings")
    @leader_only()
    async def add_player(self, interaction: discord.Interaction, name: str, aliases: Optional[str] = None):
        alias_list = [a for a in (aliases or '').split(',') if a.strip()]
        try:
            player = await self.player_ops.create_player(name, alias_list)
        except PlayerOperationError as e:
            await interaction.response.send_message(f"❌ {e}", ephemeral=True)
            return
        await interaction.response.send_message(f"👤 Added **{player.canonical_name}**.")

    @app_commands.command(name="link-alt", description="Count an alt account's scores toward its main")
    @app_commands.describe(alt="Alt player name", main="Main player name")
    @leader_only()
    async def link_alt(self, interaction: discord.Interaction, alt: str, main: str):
        alt_player = await self.player_ops.find_player_by_name(alt)
        main_player = await self.player_ops.find_player_by_name(main)
        if not alt_player or not main_player:
            await interaction.response.send_message("❌ Both players must exist.", ephemeral=True)
            return
        try:
            await self.player_ops.link_alt(alt_player.id, main_player.id)
        except MedalEconomyError as e:
            await interaction.response.send_message(e.user_message, ephemeral=True)
            return
        await interaction.response.send_message(
            f"🔗 **{alt_player.canonical_name}** is now an alt of **{main_player.canonical_name}**."
        )

    @app_commands.command(name="import-scores", description="Import recognized leaderboard text as scores")
    @app_commands.describe(
        event="Event name",
        text="Recognized leaderboard text, one 'name score' per line"
    )
    @leader_only()
    async def import_scores(self, interaction: discord.Interaction, event: str, text: str):
        await interaction.response.defer()

        event_obj = await self.bot.db.get_event_by_name(event)
        if not event_obj:
            await interaction.followup.send(f"❌ Event `{event}` not found.", ephemeral=True)
            return

        # Slash command text arrives on one line; allow ';' as a row separator
        lines = parse_scores_from_text(
            text.replace(';', '\n'),
            auto_correct=self._setting('ocr.auto_correct_numeric', True)
        )
        players = await self.bot.db.get_all_players()
        rows = build_review_rows(lines, players)
        approve_high_confidence(rows, self._setting('review.high_confidence', Config.HIGH_CONFIDENCE_THRESHOLD))

        payload = build_commit_payload(rows, event_obj.id, interaction.user.id)
        result = await self.score_ops.commit_scores(payload)

        unlinked = [row.parsed_name for row in rows if not row.linked_player_id]
        needs_review = [row.parsed_name for row in rows if row.linked_player_id and not row.is_verified]

        embed = discord.Embed(
            title="📥 Score Import",
            description=f"**{event_obj.name}**: {result['committed']} committed, {result['skipped']} skipped",
            color=discord.Color.blue()
        )
        if unlinked:
            embed.add_field(name="Unknown players", value=", ".join(unlinked)[:1024], inline=False)
        if needs_review:
            embed.add_field(name="Low confidence (not committed)", value=", ".join(needs_review)[:1024], inline=False)
        await interaction.followup.send(embed=embed)

async def setup(bot):
    await bot.add_cog(ScoreCog(bot))
