# main.py
import asyncio
import logging
from src.bot import ReTagBot
from src.config import Config, setup_logging

async def main():
    # Setup logging
    setup_logging()
    logger = logging.getLogger(__name__)

    try:
        Config.validate()

        # Initialize and start bot
        bot = ReTagBot()
        logger.info("Starting bot...")
        await bot.start()
    except Exception as e:
        logger.error(f"Error starting bot: {e}", exc_info=True)
        raise

if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
