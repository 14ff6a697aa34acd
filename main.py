"""Application entry point."""
import logging
import os
import sys
import traceback
from discord_notifier import config
from discord_notifier.config import ConfigurationError
from discord_notifier.monitor import DiscordMonitor


def setup_logging():
    """Set up logging configuration."""
    log_level = logging.DEBUG if config.DEBUG else logging.INFO

    handlers = [logging.StreamHandler()]  # Log to console
    if config.LOG_DIR:
        os.makedirs(config.LOG_DIR, exist_ok=True)
        handlers.append(logging.FileHandler(os.path.join(config.LOG_DIR, 'discord_notifier.log')))

    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers
    )


def main():
    """Main entry point for the application. Returns the process exit code."""
    setup_logging()
    logger = logging.getLogger(__name__)

    logger.info("Starting Discord keyword monitor run")

    try:
        monitor = DiscordMonitor(config)
        monitor.run()
    except ConfigurationError as e:
        logger.error("Configuration error: %s", e)
        return 1
    except Exception as e:
        logger.error("Fatal error during run: %s", e)
        logger.debug(traceback.format_exc())
        return 1

    logger.info("Run complete")
    return 0


if __name__ == "__main__":
    sys.exit(main())
