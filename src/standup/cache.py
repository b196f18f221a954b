"""
TTL 快取

同一時間最多只有一個 fetch 在執行（single-flight）：
多個呼叫者同時遇到過期的快取時，只有第一個會向上游抓取，其餘等待並取得同一份結果。
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Awaitable, Callable, Generic, Hashable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_AGE = timedelta(minutes=1)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class CachingAlgorithm(Enum):
    USE_CACHE = "use_cache"
    FORCE_REFRESH = "force_refresh"


class Cache(Generic[T]):
    """單一值的 TTL 快取"""

    def __init__(
        self,
        fetch: Callable[[], Awaitable[T]],
        max_age: timedelta = DEFAULT_MAX_AGE,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        初始化快取

        Args:
            fetch: 向上游抓取資料的 coroutine function
            max_age: 資料有效時間（預設 1 分鐘）
            clock: 取得目前時間的函式（測試時可替換）
        """
        self.max_age = max_age
        self._fetch = fetch
        self._clock = clock
        self._lock = asyncio.Lock()
        self._value: Optional[T] = None
        self._last_update_time: Optional[datetime] = None
        # 每完成一次 fetch（成功或失敗）就 +1，排隊中的呼叫者藉此得知別人已經抓過
        self._generation = 0
        self._last_error: Optional[BaseException] = None

    @property
    def last_update_time(self) -> Optional[datetime]:
        return self._last_update_time

    @property
    def is_expired(self) -> bool:
        if self._last_update_time is None:
            return True
        return self._clock() >= self._last_update_time + self.max_age

    @property
    def is_fetching(self) -> bool:
        return self._lock.locked()

    def invalidate(self) -> None:
        """讓下一次讀取一定重新抓取"""
        self._last_update_time = None

    async def get_value(self, algorithm: CachingAlgorithm = CachingAlgorithm.USE_CACHE) -> T:
        if algorithm is CachingAlgorithm.USE_CACHE and not self.is_expired:
            return self._value

        seen = self._generation
        async with self._lock:
            if self._generation != seen:
                # 排隊期間已有其他呼叫者完成 fetch，直接共用其結果
                if self._last_error is not None:
                    raise self._last_error
                return self._value

            if algorithm is CachingAlgorithm.USE_CACHE and not self.is_expired:
                return self._value

            # 被取消時 generation 不變，下一個等待者會重新抓取
            try:
                value = await self._fetch()
            except Exception as e:
                self._last_error = e
                self._generation += 1
                logger.warning(f"Cache fetch failed: {e}")
                raise

            self._value = value
            self._last_update_time = self._clock()
            self._last_error = None
            self._generation += 1
            return value


class CacheMap(Generic[T]):
    """
    以 key 區分的一組快取，共用 max_age 與 clock

    過期且沒有 fetch 進行中的快取會在下一次 get() 時移除；
    invalidate() 直接移除，舊值不會留在記憶體中。
    """

    def __init__(
        self,
        max_age: timedelta = DEFAULT_MAX_AGE,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.max_age = max_age
        self._clock = clock
        self._caches: dict[Hashable, Cache[T]] = {}

    def get(self, key: Hashable, fetch: Callable[[], Awaitable[T]]) -> Cache[T]:
        """取得 key 對應的快取，不存在時以 fetch 建立"""
        self._prune(keep=key)
        cache = self._caches.get(key)
        if cache is None:
            cache = Cache(fetch, max_age=self.max_age, clock=self._clock)
            self._caches[key] = cache
        return cache

    def _prune(self, keep: Hashable) -> None:
        stale = [
            key for key, cache in self._caches.items()
            if key != keep and cache.is_expired and not cache.is_fetching
        ]
        for key in stale:
            del self._caches[key]
        if stale:
            logger.debug(f"Dropped {len(stale)} expired cache entries")

    def invalidate(self, key: Optional[Hashable] = None) -> None:
        """移除單一 key 或全部快取"""
        if key is None:
            self._caches.clear()
        else:
            self._caches.pop(key, None)

    def __len__(self) -> int:
        return len(self._caches)
