"""
Logging utilities for the topology import pipeline.
"""
import logging
import os
import sys

# Create logger
logger = logging.getLogger(__name__)

def setup_logging():
    """Set up logging configuration."""
    log_level = os.getenv('LOG_LEVEL', 'INFO').upper()

    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stdout)
        ]
    )

    # Reduce noise from some libraries
    logging.getLogger('werkzeug').setLevel(logging.WARNING)

def log_startup_info(runtime_config):
    """Log startup information."""
    logger.info("=" * 60)
    logger.info("TOPOLOGY IMPORT PIPELINE")
    logger.info("=" * 60)
    logger.info(f"Working directory: {os.getcwd()}")
    logger.info(f"Python: {sys.executable}")
    logger.info(f"Layout algorithm: {runtime_config.get('layout_algorithm')}")
    logger.info(f"Grid snap: {runtime_config.get('grid_snap')}")
    logger.info(f"Validation mode: {runtime_config.get('validation_mode')}")
    logger.info(f"Output folder: {runtime_config.get('output_dir')}")
    logger.info("=" * 60)
