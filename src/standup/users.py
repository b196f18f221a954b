"""
目前使用者

Kimai 的 /api/users/me 很少變動，以快取保存；
設定變更（例如換 token）後呼叫 invalidate() 重新取得。
"""

import logging
from datetime import datetime, timedelta
from typing import Callable

from .cache import Cache, CachingAlgorithm, utc_now
from .collaborators import TimeTracker
from .models import User

logger = logging.getLogger(__name__)

USER_MAX_AGE = timedelta(hours=1)


class UserService:
    """目前登入使用者服務"""

    def __init__(self, time_tracker: TimeTracker, max_age: timedelta = USER_MAX_AGE,
                 clock: Callable[[], datetime] = utc_now):
        self.time_tracker = time_tracker
        self._cache: Cache[User] = Cache(self._fetch, max_age, clock)

    async def _fetch(self) -> User:
        user = await self.time_tracker.get_my_user()
        logger.info(f"Current user: {user.username} ({user.id})")
        return user

    async def get_current_user(self, algorithm: CachingAlgorithm = CachingAlgorithm.USE_CACHE) -> User:
        return await self._cache.get_value(algorithm)

    def invalidate(self) -> None:
        self._cache.invalidate()
