"""
日志模块
按 LoggingConfig 安装 loguru 输出

只管理本模块添加的输出，宿主自己注册的 sink 不受影响；
重复调用时先撤下上一次安装的输出，因此可以随配置重新装配。
"""

import sys
from pathlib import Path
from typing import List, Optional

from loguru import logger

from .config import LoggingConfig, get_config

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> | "
    "<level>{message}</level>"
)

_installed: List[int] = []
_default_removed = False


def reset_logger() -> None:
    """撤下本模块安装的全部输出"""
    while _installed:
        logger.remove(_installed.pop())


def setup_logger(settings: Optional[LoggingConfig] = None, format_string: Optional[str] = None) -> List[int]:
    """
    配置日志输出

    Args:
        settings: 日志配置（默认取全局配置的 logging 段）；file 为空表示只输出到控制台
        format_string: 自定义格式

    Returns:
        本次安装的 sink id 列表
    """
    global _default_removed

    settings = settings or get_config().logging
    fmt = format_string or LOG_FORMAT
    level = settings.level.upper()

    reset_logger()
    if not _default_removed:
        # loguru 自带的 stderr 输出，否则控制台每条日志出现两次
        try:
            logger.remove(0)
        except ValueError:
            pass
        _default_removed = True

    _installed.append(logger.add(sys.stderr, level=level, format=fmt, colorize=True))

    if settings.file:
        Path(settings.file).parent.mkdir(parents=True, exist_ok=True)
        _installed.append(
            logger.add(
                settings.file,
                level=level,
                format=fmt,
                rotation=settings.rotation,
                retention=settings.retention,
                encoding="utf-8",
            )
        )

    logger.debug(f"日志输出已安装: 级别={level}, 文件={settings.file or '无'}")
    return list(_installed)
