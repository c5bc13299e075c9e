import json
import logging
from logging.config import dictConfig
import os


def configure_logging():
    """Apply the dictConfig JSON file named by LOGGING_CONFIG_FILE, else log everything at DEBUG."""
    logging_config_file = os.getenv("LOGGING_CONFIG_FILE", "")

    if len(logging_config_file) > 0:
        with open(logging_config_file) as fl:
            dictConfig(json.load(fl))
        return

    logging.basicConfig()
    logging.getLogger().setLevel(logging.DEBUG)
