# nexon_core/utils/logger.py
import logging
import sys
from nexon_core.utils.config import settings

# Get the logger instance for our application.
logger = logging.getLogger("nexon_core")

# Set the level from the settings file, defaulting to INFO if the level is invalid.
log_level = getattr(logging, settings.log_level.upper(), logging.INFO)
logger.setLevel(log_level)

# Clear any existing handlers to prevent duplicate logs on re-import.
if logger.hasHandlers():
    logger.handlers.clear()

handler = logging.StreamHandler(sys.stdout)
formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
handler.setFormatter(formatter)
logger.addHandler(handler)

# Prevent log messages from being passed to the root logger to avoid double printing.
logger.propagate = False
