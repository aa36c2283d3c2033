import asyncio
import logging
import traceback
from typing import Optional

import discord
from discord.ext import commands
from discord import app_commands

from medalbot.config import Config
from medalbot.database.database import Database
from medalbot.services.configuration import ConfigurationService
from medalbot.utils.logger import setup_logger

class MedalBot(commands.Bot):
    def __init__(self):
        intents = discord.Intents.default()
        intents.guilds = True
        intents.members = True

        super().__init__(
            command_prefix=Config.COMMAND_PREFIX,
            intents=intents,
            help_command=None
        )

        self.tree.on_error = self.on_app_command_error

        self.db: Optional[Database] = None
        self.config_service: Optional[ConfigurationService] = None
        self.logger = setup_logger(__name__)

    async def setup_hook(self):
        """Called when the bot is starting up"""
        self.logger.info("Setting up Medal Bot...")

        self.db = Database()
        await self.db.initialize()

        self.config_service = ConfigurationService(self.db.session_factory)
        await self.config_service.seed_defaults()
        await self.config_service.load_all()
        self.logger.info("Configuration service initialized")

        await self.load_cogs()
        await self._sync_commands()

        self.logger.info("Medal Bot setup complete!")

    async def load_cogs(self):
        """Load all cogs"""
        for cog in ['medalbot.cogs.medals', 'medalbot.cogs.scores']:
            try:
                await self.load_extension(cog)
                self.logger.info(f"Loaded cog: {cog}")
            except Exception as e:
                self.logger.error(f"Failed to load cog {cog}: {e}", exc_info=True)

    async def _sync_commands(self):
        """Sync slash commands with Discord"""
        if not self.tree.get_commands():
            self.logger.warning("No application commands found to sync. Check for cog loading errors.")
            return

        try:
            guild_ids = Config.get_guild_ids()

            if guild_ids:
                # Guild sync is instant; global sync can take up to an hour
                total_synced = 0
                for guild_id in guild_ids:
                    try:
                        guild = discord.Object(id=guild_id)
                        self.tree.copy_global_to(guild=guild)
                        synced = await self.tree.sync(guild=guild)
                        self.logger.info(f"Synced {len(synced)} command(s) to guild {guild_id}")
                        total_synced += len(synced)
                    except discord.errors.Forbidden:
                        self.logger.error(f"Permission error syncing to guild {guild_id}. Ensure the bot has the 'application.commands' scope.", exc_info=True)
                    except discord.errors.HTTPException as e:
                        self.logger.error(f"HTTP error syncing to guild {guild_id}. Status: {e.status}, Response: {e.text}", exc_info=True)

                self.logger.info(f"Multi-guild sync complete: {total_synced} total command instances deployed")
            else:
                synced = await self.tree.sync()
                self.logger.info(f"Synced {len(synced)} command(s) globally")
        except Exception as e:
            # Bot keeps running without fresh slash commands
            self.logger.error(f"Failed to sync commands: {e}", exc_info=True)

    async def on_ready(self):
        self.logger.info(f'{self.user} has connected to Discord!')
        self.logger.info(f'Bot is in {len(self.guilds)} guilds')
        await self.change_presence(activity=discord.Game(name="Medal ledger | /balance"))

    async def on_app_command_error(self, interaction: discord.Interaction, error: app_commands.AppCommandError):
        """Global error handler for slash commands"""
        command_name = interaction.command.name if interaction.command else 'Unknown'
        if isinstance(error, app_commands.CheckFailure):
            self.logger.info(f"Permission denied for command '{command_name}' by user {interaction.user}")
            embed = discord.Embed(
                title="❌ Leader Privileges Required",
                description=f"This command is restricted to administrators and the {Config.LEADER_ROLE_NAME} role.",
                color=discord.Color.red()
            )
        else:
            self.logger.error(f"Error in app command '{command_name}': {error}", exc_info=True)
            embed = discord.Embed(
                title="❌ An unexpected error occurred",
                description="Nothing was changed. The developers have been notified.",
                color=discord.Color.red()
            )

        try:
            if interaction.response.is_done():
                await interaction.followup.send(embed=embed, ephemeral=True)
            else:
                await interaction.response.send_message(embed=embed, ephemeral=True)
        except Exception as e:
            self.logger.error(f"Failed to send error response: {e}")

    async def close(self):
        """Cleanup when bot is shutting down"""
        self.logger.info("Shutting down Medal Bot...")

        if self.db:
            await self.db.close()

        await super().close()

async def main():
    """Main entry point"""
    Config.validate()

    bot = MedalBot()

    try:
        await bot.start(Config.DISCORD_TOKEN)
    except KeyboardInterrupt:
        await bot.close()
    except Exception as e:
        logging.error(f"Fatal error: {e}")
        traceback.print_exc()
    finally:
        await bot.close()

def run():
    asyncio.run(main())

if __name__ == "__main__":
    run()
