"""
配置管理模块
统一管理上游、缓存、调度与日志配置
"""

import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv


@dataclass
class UpstreamConfig:
    """上游数据源配置"""
    base_url: str = "https://api.exchangerate.host/timeseries"
    access_key: str = ""
    timeout_seconds: Optional[float] = None


@dataclass
class CacheConfig:
    """缓存配置"""
    max_cost: int = 32 * 1024 * 1024  # 32MB
    sample_size: int = 5
    num_counters: int = 1 << 20


@dataclass
class DispatcherConfig:
    """调度器配置"""
    timeout_seconds: Optional[float] = None
    single_flight: bool = False


@dataclass
class LoggingConfig:
    """日志配置"""
    level: str = "INFO"
    file: str = ""
    rotation: str = "10 MB"
    retention: str = "1 week"


@dataclass
class Config:
    """
    系统配置

    优先级：环境变量 > 配置文件 > 默认值
    """
    upstream: UpstreamConfig = field(default_factory=UpstreamConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    dispatcher: DispatcherConfig = field(default_factory=DispatcherConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def __post_init__(self):
        self.apply_env()

    def apply_env(self) -> None:
        """用环境变量覆盖配置"""
        self.upstream.base_url = os.getenv("EXCHANGERATES_BASE_URL", self.upstream.base_url)
        self.upstream.access_key = os.getenv("EXCHANGERATES_ACCESS_KEY", self.upstream.access_key)

        max_cost = os.getenv("EXCHANGERATES_CACHE_MAX_COST")
        if max_cost:
            self.cache.max_cost = int(max_cost)

        self.logging.level = os.getenv("LOG_LEVEL", self.logging.level)
        self.logging.file = os.getenv("LOG_FILE", self.logging.file)

    @classmethod
    def from_yaml(cls, path: str) -> "Config":
        """
        从 YAML 文件加载配置

        Args:
            path: 配置文件路径

        Returns:
            Config 对象
        """
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Config":
        """从字典加载配置，未知字段报错"""
        config = cls()

        for section in ("upstream", "cache", "dispatcher", "logging"):
            target = getattr(config, section)
            for key, value in (data.get(section) or {}).items():
                if not hasattr(target, key):
                    raise ValueError(f"未知配置项: {section}.{key}")
                setattr(target, key, value)

        # 文件中的值不能覆盖环境变量
        config.apply_env()
        return config

    def to_dict(self) -> Dict[str, Any]:
        """转换为字典（密钥脱敏）"""
        data = asdict(self)
        if data["upstream"]["access_key"]:
            data["upstream"]["access_key"] = "***"
        return data

    def save_yaml(self, path: str) -> None:
        """保存配置到 YAML 文件"""
        with open(path, "w", encoding="utf-8") as f:
            yaml.dump(self.to_dict(), f, default_flow_style=False, allow_unicode=True)


def load_config(
    config_path: Optional[str] = None,
    env_file: Optional[str] = None,
) -> Config:
    """
    加载配置

    Args:
        config_path: YAML 配置文件路径
        env_file: .env 文件路径（默认尝试当前目录）

    Returns:
        Config 对象
    """
    if env_file:
        load_dotenv(env_file)
    elif Path(".env").exists():
        load_dotenv(Path(".env"))

    if config_path and Path(config_path).exists():
        return Config.from_yaml(config_path)
    return Config()


# 全局配置实例
_global_config: Optional[Config] = None


def get_config() -> Config:
    """获取全局配置"""
    global _global_config
    if _global_config is None:
        _global_config = load_config()
    return _global_config


def set_config(config: Config) -> None:
    """设置全局配置"""
    global _global_config
    _global_config = config


def reset_config() -> None:
    """重置全局配置，下次 get_config 重新加载"""
    global _global_config
    _global_config = None
