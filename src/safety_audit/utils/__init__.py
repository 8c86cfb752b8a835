"""Utility modules for the safety audit tool."""

from .config_loader import load_config, create_output_directories, AppConfig
from .logger import setup_logger, setup_logging_from_config

__all__ = [
    'load_config',
    'create_output_directories',
    'AppConfig',
    'setup_logger',
    'setup_logging_from_config'
]
