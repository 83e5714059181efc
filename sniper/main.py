"""Entry point for the memecoin sniper."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from sniper.bot import SniperBot
from sniper.config import ConfigInvalid, load_config, setup_logging

logger = logging.getLogger(__name__)


async def _main(config_path: str, env_file: str | None) -> int:
    try:
        config = load_config(config_path, env_file=env_file)
    except ConfigInvalid as e:
        logger.error("config_invalid", extra={"path": config_path, "error": str(e)})
        return 1

    setup_logging(config.system.log_level)
    logger.info(
        "sniper_starting",
        extra={"mode": config.system.mode, "dry_run": config.execution.dry_run},
    )

    bot = SniperBot(config)
    try:
        await bot.run_forever()
    except ConfigInvalid as e:
        # Live mode without wallet/signer is only detectable at engine init
        logger.error("config_invalid", extra={"error": str(e)})
        return 1
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(description="Memecoin sniper")
    parser.add_argument("--config", default="config/config.yaml",
                        help="Path to the YAML configuration")
    parser.add_argument("--env-file", default=None,
                        help="Optional .env file with secrets and overrides")
    args = parser.parse_args()

    setup_logging()
    sys.exit(asyncio.run(_main(args.config, args.env_file)))


if __name__ == "__main__":
    main()
