"""Main entry point for the code generator bot."""
import asyncio
import logging

from bot.client import CodeBot
from config import config


def setup_logging(level: str = "INFO"):
    """Configure console logging for the bot and the generator."""
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


async def main():
    """Start the code generator bot."""
    # Validate configuration
    try:
        config.validate()
        print("Configuration validated successfully")
    except ValueError as e:
        print(f"Configuration error: {e}")
        print("\nPlease check your .env file and ensure all required values are set.")
        return

    setup_logging(config.LOG_LEVEL)

    # Create and start the bot
    bot = CodeBot()

    try:
        print("Starting Discord bot...")
        await bot.start(config.DISCORD_BOT_TOKEN)
    except KeyboardInterrupt:
        print("\nShutting down bot...")
        await bot.close()
    except Exception:
        logging.getLogger(__name__).exception("Error running bot")
        await bot.close()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\nBot stopped")
