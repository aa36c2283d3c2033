import discord
from discord.ext import commands
from discord import app_commands
from typing import Optional

from medalbot.operations.event_operations import EventOperations, EventOperationError
from medalbot.operations.ledger_operations import LedgerOperations
from medalbot.operations.player_operations import PlayerOperations
from medalbot.services.distribution_service import WeightedDistributionService
from medalbot.services.raffle_service import RaffleService
from medalbot.utils.exceptions import MedalEconomyError
from medalbot.utils.permissions import leader_only
from medalbot.utils.logger import setup_logger

logger = setup_logger(__name__)

class MedalCog(commands.Cog):
    """Pots, raffles, weighted distribution and balances"""

    def __init__(self, bot):
        self.bot = bot
        self.event_ops = EventOperations(bot.db)
        self.ledger_ops = LedgerOperations(bot.db)
        self.player_ops = PlayerOperations(bot.db)
        self.distribution = WeightedDistributionService(bot.db.session_factory)
        self.raffles = RaffleService(bot.db.session_factory)
        self.logger = logger

    async def _resolve_event_and_medal(self, event_name: str, medal_name: str):
        event = await self.bot.db.get_event_by_name(event_name)
        if not event:
            raise EventOperationError(f"❌ Event `{event_name}` not found.")
        medal = await self.bot.db.get_medal_by_name(medal_name)
        if not medal:
            raise EventOperationError(f"❌ Medal `{medal_name}` not found.")
        return event, medal

    @app_commands.command(name="set-pot", description="Set the medal pot of an event")
    @app_commands.describe(
        event="Event name",
        medal="Medal type (e.g. Gold)",
        amount="Total medals in the pot",
        min_score="Minimum score to qualify for the raffle and distribution"
    )
    @leader_only()
    async def set_pot(self, interaction: discord.Interaction, event: str, medal: str,
                      amount: int, min_score: Optional[int] = 0):
        await interaction.response.defer()
        try:
            event_obj, medal_obj = await self._resolve_event_and_medal(event, medal)
            totals = await self.event_ops.set_event_pot(
                event_obj.id, medal_obj.id, amount, min_score or 0, created_by=interaction.user.id
            )
            embed = discord.Embed(
                title="💰 Pot Updated",
                description=f"**{event_obj.name}** now has **{totals.total_amount:,}** {medal_obj.name}",
                color=discord.Color.gold()
            )
            embed.add_field(name="Remaining", value=f"{totals.remaining:,}", inline=True)
            embed.add_field(name="Min score", value=f"{totals.min_score_for_raffle:,}", inline=True)
            await interaction.followup.send(embed=embed)
        except MedalEconomyError as e:
            await interaction.followup.send(e.user_message, ephemeral=True)
        except EventOperationError as e:
            await interaction.followup.send(str(e), ephemeral=True)

    @app_commands.command(name="distribute", description="Distribute the remaining pot by score")
    @app_commands.describe(event="Event name", medal="Medal type (e.g. Gold)")
    @leader_only()
    async def distribute(self, interaction: discord.Interaction, event: str, medal: str):
        await interaction.response.defer()
        try:
            event_obj, medal_obj = await self._resolve_event_and_medal(event, medal)
            result = await self.distribution.run_distribution(event_obj.id, medal_obj.id, interaction.user.id)
        except MedalEconomyError as e:
            await interaction.followup.send(e.user_message, ephemeral=True)
            return
        except EventOperationError as e:
            await interaction.followup.send(str(e), ephemeral=True)
            return

        if result['status'] == 'noop':
            reasons = {
                'no_remaining': "Nothing left in the pot to distribute.",
                'no_scores': "No verified scores qualify for this event.",
            }
            await interaction.followup.send(f"ℹ️ {reasons[result['reason']]}")
            return

        embed = discord.Embed(
            title="⚖️ Weighted Distribution Complete",
            description=f"**{event_obj.name}** · {medal_obj.name}",
            color=discord.Color.green()
        )
        embed.add_field(name="Players paid", value=str(result['players']), inline=True)
        embed.add_field(name="Distributed", value=f"{result['distributed_now']:,}", inline=True)
        embed.add_field(name="Capped", value=str(result['capped_players']), inline=True)
        embed.add_field(name="Pot before", value=f"{result['remaining_before']:,}", inline=True)
        embed.add_field(name="Pot after", value=f"{result['remaining_after']:,}", inline=True)
        await interaction.followup.send(embed=embed)

    @app_commands.command(name="raffle-create", description="Create a raffle for an event pot")
    @app_commands.describe(
        event="Event name",
        medal="Medal type (e.g. Gold)",
        name="Raffle name",
        prizes="Number of winners"
    )
    @leader_only()
    async def raffle_create(self, interaction: discord.Interaction, event: str, medal: str,
                            name: str, prizes: app_commands.Range[int, 1, 100] = 1):
        await interaction.response.defer()
        try:
            event_obj, medal_obj = await self._resolve_event_and_medal(event, medal)
            prize_amount = self.bot.config_service.get('raffle.win_amount') if self.bot.config_service else None
            raffle = await self.raffles.create_raffle(
                event_obj.id, medal_obj.id, name, prizes, interaction.user.id, prize_amount=prize_amount
            )
            await interaction.followup.send(
                f"🎟️ Raffle **{raffle.name}** (#{raffle.id}) created: {raffle.total_prizes} × "
                f"{raffle.prize_amount:,} {medal_obj.name}"
            )
        except MedalEconomyError as e:
            await interaction.followup.send(e.user_message, ephemeral=True)
        except (EventOperationError, ValueError) as e:
            await interaction.followup.send(f"❌ {e}", ephemeral=True)

    @app_commands.command(name="raffle-draw", description="Draw the winners of a raffle")
    @app_commands.describe(raffle_id="Raffle number")
    @leader_only()
    async def raffle_draw(self, interaction: discord.Interaction, raffle_id: int):
        await interaction.response.defer()
        try:
            result = await self.raffles.draw_raffle(raffle_id, interaction.user.id)
        except MedalEconomyError as e:
            await interaction.followup.send(e.user_message, ephemeral=True)
            return

        if result['status'] == 'noop':
            await interaction.followup.send("ℹ️ No qualified players for this raffle.")
            return

        names = []
        for player_id in result['winners']:
            player = await self.bot.db.get_player_by_id(player_id)
            names.append(player.canonical_name if player else f"#{player_id}")

        embed = discord.Embed(
            title="🎉 Raffle Drawn",
            description="\n".join(f"🏆 {name}" for name in names),
            color=discord.Color.purple()
        )
        embed.set_footer(text=f"{result['entrants']} entrants · {result['amount_used']:,} medals paid")
        await interaction.followup.send(embed=embed)

    @app_commands.command(name="balance", description="Show a player's medal balances")
    @app_commands.describe(player="Player name or alias")
    async def balance(self, interaction: discord.Interaction, player: str):
        player_obj = await self.player_ops.find_player_by_name(player)
        if not player_obj:
            await interaction.response.send_message(f"❌ Player `{player}` not found.", ephemeral=True)
            return

        balances = await self.ledger_ops.get_balances(player_obj.id)
        embed = discord.Embed(title=f"🏅 {player_obj.canonical_name}", color=discord.Color.blue())
        for medal_name, amount in balances.items():
            embed.add_field(name=medal_name, value=f"{amount:,}", inline=True)
        if player_obj.is_alt:
            embed.set_footer(text="Alt account: payouts go to the main")
        await interaction.response.send_message(embed=embed)

async def setup(bot):
    await bot.add_cog(MedalCog(bot))
