"""
工具模块
"""

from .config import Config, get_config, load_config, reset_config, set_config
from .logger import reset_logger, setup_logger

__all__ = ["Config", "get_config", "load_config", "reset_config", "reset_logger", "set_config", "setup_logger"]
