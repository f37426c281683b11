import argparse
import logging
import os
import sys

from .config import load_config
from .errors import ConfigError, error_message
from .handler import FAILED, OK, handler

log = logging.getLogger("catalog-export")


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog="catalog-export",
        description="Export the document catalog to a CSV report and deliver it.",
    )
    parser.add_argument("--config", help="YAML file overriding environment settings")
    parser.add_argument("--log-level", default=os.environ.get("LOG_LEVEL", "INFO"))
    args = parser.parse_args(argv)

    logging.basicConfig(level=args.log_level.upper(), format="%(asctime)s  %(message)s",
                        datefmt="%H:%M:%S")

    try:
        config = load_config(args.config)
    except ConfigError as e:
        log.error("Exception occurred: %s", error_message(e))
        status = FAILED
    else:
        log.info("API: %s  |  scopes: %s  |  list type: %s",
                 config.api_url, ",".join(config.scope_ids), config.list_type or "-")
        status = handler(config)

    log.info("Status %d: %s", status.code, status.message)
    return 0 if status == OK else 1


if __name__ == "__main__":
    sys.exit(main())
