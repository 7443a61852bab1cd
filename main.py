"""
Main entry point for op-config.
Loads .env, resolves the configuration and reports what was loaded.
"""

import json
import os
import sys

from dotenv import load_dotenv

from opconfig.config_loader import ConfigLoader
from opconfig.errors import ConfigError
from opconfig.logging_config import ConfigLogger, apply_log_level


def main(argv=None):
    """Main application entry point."""
    argv = sys.argv[1:] if argv is None else argv
    logger = ConfigLogger.get_instance()

    load_dotenv(os.path.join(os.getcwd(), ".env"))
    # .env may set OP_CONFIG_LOG_LEVEL after the package was imported
    apply_log_level()

    try:
        config = ConfigLoader.get_instance().load_sync()
    except ConfigError as e:
        logger.log_error(f"Unable to load configuration: {e}", source="Main")
        return 1

    logger.log_info(f"Loaded configuration sections: {sorted(config)}", source="Main")

    if "--json" in argv:
        json.dump(config, sys.stdout, indent=2, sort_keys=True, default=str)
        sys.stdout.write("\n")

    return 0


if __name__ == "__main__":
    sys.exit(main())
