import asyncio
import logging
import sys

import regroove.app
import regroove.config


# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def main () -> None:

	"""
	Main entry point: ``python -m regroove [config.yaml]``.
	"""

	logger.info("Regroove starting...")

	config_path = sys.argv[1] if len(sys.argv) > 1 else "config.yaml"
	settings = regroove.config.load_config(config_path)

	if settings.debug:
		logging.getLogger("regroove").setLevel(logging.DEBUG)

	asyncio.run(regroove.app.run(settings))


if __name__ == "__main__":
	main()
