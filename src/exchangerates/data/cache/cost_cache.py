"""
成本加权内存缓存
按字节成本计费，近似 LFU 准入/淘汰，支持逐条过期
"""

import random
import threading
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Callable, Dict, Optional, Tuple

from loguru import logger

from .base import CacheBackend


@dataclass
class _Entry:
    value: Any
    cost: int
    expires_at: Optional[float]


class CostWeightedCache(CacheBackend):
    """
    成本加权缓存

    特点：
    - 全局成本预算，驻留条目成本之和始终不超过 max_cost
    - 近似 LFU：每次读写累加访问频率，计数达到 num_counters 后整体减半
    - 准入控制：预算不足时随机采样若干条目，选频率最低者作为淘汰候选，
      新条目频率更低则拒绝写入
    - 过期条目对 get 不可见，惰性回收
    - 线程安全，可在多个事件循环/线程间共享同一实例
    """

    def __init__(
        self,
        max_cost: int,
        sample_size: int = 5,
        num_counters: int = 1 << 20,
        default_ttl: Optional[timedelta] = None,
        clock: Callable[[], float] = time.time,
        seed: Optional[int] = None,
    ):
        """
        初始化缓存

        Args:
            max_cost: 成本预算（字节）
            sample_size: 淘汰时的采样数量
            num_counters: 频率表老化阈值
            default_ttl: 默认过期时间
            clock: 墙钟函数（返回 unix 秒）
            seed: 采样随机种子
        """
        super().__init__(default_ttl)
        if max_cost <= 0:
            raise ValueError(f"max_cost 必须为正数: {max_cost}")
        if sample_size <= 0:
            raise ValueError(f"sample_size 必须为正数: {sample_size}")

        self.max_cost = max_cost
        self.sample_size = sample_size
        self.num_counters = num_counters
        self._clock = clock
        self._random = random.Random(seed)
        self._lock = threading.Lock()

        self._entries: Dict[str, _Entry] = {}
        self._freq: Dict[str, int] = {}
        self._increments = 0
        self._cost_used = 0

        self._hits = 0
        self._misses = 0
        self._admitted = 0
        self._rejected = 0
        self._evicted = 0
        self._expired = 0

    # ---------- 频率统计 ----------

    def _touch(self, key: str) -> None:
        self._freq[key] = self._freq.get(key, 0) + 1
        self._increments += 1
        if self._increments >= self.num_counters or len(self._freq) > self.num_counters:
            self._age()

    def _age(self) -> None:
        """频率整体减半，清除归零的计数"""
        self._freq = {k: v >> 1 for k, v in self._freq.items() if v >> 1 > 0}
        self._increments = 0

    # ---------- 内部操作 ----------

    def _is_expired(self, entry: _Entry, now: float) -> bool:
        return entry.expires_at is not None and entry.expires_at <= now

    def _remove(self, key: str) -> Optional[_Entry]:
        entry = self._entries.pop(key, None)
        if entry is not None:
            self._cost_used -= entry.cost
        return entry

    def _pick_victim(self, now: float) -> Optional[Tuple[str, bool]]:
        """
        采样选出淘汰候选

        Returns:
            (键, 是否已过期)，缓存为空时返回 None
        """
        if not self._entries:
            return None

        size = min(self.sample_size, len(self._entries))
        sample = self._random.sample(list(self._entries), size)

        for key in sample:
            if self._is_expired(self._entries[key], now):
                return key, True

        victim = min(sample, key=lambda k: self._freq.get(k, 0))
        return victim, False

    # ---------- 公共接口 ----------

    async def get(self, key: str) -> Tuple[Optional[Any], bool]:
        return self.get_nowait(key)

    def get_nowait(self, key: str) -> Tuple[Optional[Any], bool]:
        """同步读取，不会阻塞在 I/O 上"""
        with self._lock:
            self._touch(key)
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None, False

            if self._is_expired(entry, self._clock()):
                self._remove(key)
                self._expired += 1
                self._misses += 1
                return None, False

            self._hits += 1
            return entry.value, True

    async def set(
        self,
        key: str,
        value: Any,
        cost: int,
        ttl: Optional[timedelta] = None,
    ) -> bool:
        return self.set_nowait(key, value, cost, ttl)

    def set_nowait(
        self,
        key: str,
        value: Any,
        cost: int,
        ttl: Optional[timedelta] = None,
    ) -> bool:
        """同步写入，返回是否被接纳"""
        cost = max(int(cost), 0)
        if ttl is None:
            ttl = self.default_ttl

        with self._lock:
            self._touch(key)

            if cost > self.max_cost or (ttl is not None and ttl <= timedelta(0)):
                # 旧值不能比被拒绝的新值活得更久
                self._remove(key)
                self._rejected += 1
                logger.debug(f"缓存拒绝 {key}: cost={cost}, ttl={ttl}")
                return False

            now = self._clock()
            is_update = self._remove(key) is not None
            candidate_freq = self._freq.get(key, 0)

            while self._cost_used + cost > self.max_cost:
                picked = self._pick_victim(now)
                if picked is None:
                    break
                victim, expired = picked

                if not expired and not is_update and candidate_freq < self._freq.get(victim, 0):
                    self._rejected += 1
                    logger.debug(f"缓存拒绝 {key}: 频率 {candidate_freq} 低于淘汰候选 {victim}")
                    return False

                self._remove(victim)
                if expired:
                    self._expired += 1
                else:
                    self._evicted += 1

            expires_at = now + ttl.total_seconds() if ttl is not None else None
            self._entries[key] = _Entry(value=value, cost=cost, expires_at=expires_at)
            self._cost_used += cost
            self._admitted += 1
            return True

    async def delete(self, key: str) -> bool:
        with self._lock:
            return self._remove(key) is not None

    async def clear(self) -> int:
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
            self._freq.clear()
            self._increments = 0
            self._cost_used = 0
            return count

    async def cleanup_expired(self) -> int:
        with self._lock:
            now = self._clock()
            expired = [k for k, e in self._entries.items() if self._is_expired(e, now)]
            for key in expired:
                self._remove(key)
            self._expired += len(expired)
            return len(expired)

    async def stats(self) -> Dict[str, Any]:
        with self._lock:
            lookups = self._hits + self._misses
            return {
                "entries": len(self._entries),
                "cost_used": self._cost_used,
                "max_cost": self.max_cost,
                "hits": self._hits,
                "misses": self._misses,
                "hit_rate": self._hits / lookups if lookups else 0.0,
                "admitted": self._admitted,
                "rejected": self._rejected,
                "evicted": self._evicted,
                "expired": self._expired,
            }

    @property
    def cost_used(self) -> int:
        return self._cost_used

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self):
        return f"CostWeightedCache(cost={self._cost_used}/{self.max_cost}, entries={len(self._entries)})"
