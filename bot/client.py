"""Discord bot client setup and configuration."""
import logging

import discord
from discord.ext import commands

logger = logging.getLogger(__name__)


class CodeBot(commands.Bot):
    """Custom Discord bot for issuing voucher and activation codes."""

    def __init__(self):
        """Initialize the bot with required intents and configuration."""
        intents = discord.Intents.default()

        super().__init__(
            command_prefix="!",  # Not used since we use slash commands
            intents=intents
        )

    async def setup_hook(self):
        """Setup hook called when bot is starting."""
        # Load cogs
        await self.load_extension('bot.cogs.codes')

        # Sync slash commands with Discord
        await self.tree.sync()
        logger.info("Slash commands synced")

    async def on_ready(self):
        """Called when the bot is ready and connected to Discord."""
        logger.info("Logged in as %s (ID: %s)", self.user, self.user.id)
        logger.info("Connected to %d guild(s)", len(self.guilds))

    async def on_error(self, event, *args, **kwargs):
        """Global error handler."""
        logger.exception("Error in event %s", event)
