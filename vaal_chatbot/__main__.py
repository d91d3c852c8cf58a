"""CLI entry point for vaal-chatbot."""
import argparse
import asyncio
import logging
import signal
import sys

from .config import ConfigError, load_config
from .main import ChatBotApp


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Vaal Chatbot: Twitch collection & Vaal Orb lookups")
    parser.add_argument("--config", type=str, help="Path to config.yaml (environment variables override it)")
    parser.add_argument("--log-level", type=str, default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    parser.add_argument("--validate-config", action="store_true", help="Validate config and exit without starting")
    return parser.parse_args(argv)


async def main_async() -> None:
    args = parse_args()
    setup_logging(args.log_level)
    logger = logging.getLogger("chatbot")

    try:
        config = load_config(args.config)
    except ConfigError as e:
        logger.error("Failed to create bot: %s", e)
        sys.exit(1)

    if args.validate_config:
        logger.info("Config is valid.")
        return

    app = ChatBotApp(config)

    # Signal handling (Unix only; Windows uses KeyboardInterrupt)
    loop = asyncio.get_running_loop()
    if sys.platform != "win32":
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, lambda: asyncio.ensure_future(app.stop()))

    try:
        await app.start()
    except KeyboardInterrupt:
        pass
    finally:
        await app.stop()


def main() -> None:
    """Sync entry point for pyproject.toml [project.scripts]."""
    asyncio.run(main_async())


if __name__ == "__main__":
    main()
