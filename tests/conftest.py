"""
测试全局配置

每次测试前重置全局配置，并清除会影响配置的环境变量；
测试结束后撤下装配过程中安装的日志输出。
"""

import sys
from pathlib import Path

import pytest

# 未安装时直接从 src/ 导入
sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "src"))

from exchangerates.utils.config import reset_config  # noqa: E402
from exchangerates.utils.logger import reset_logger  # noqa: E402

CONFIG_ENV_VARS = [
    "EXCHANGERATES_BASE_URL",
    "EXCHANGERATES_ACCESS_KEY",
    "EXCHANGERATES_CACHE_MAX_COST",
    "LOG_LEVEL",
    "LOG_FILE",
]


@pytest.fixture(autouse=True)
def clean_config_env(monkeypatch):
    """隔离环境变量、全局配置与日志输出"""
    for name in CONFIG_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    reset_config()
    yield
    reset_config()
    reset_logger()
