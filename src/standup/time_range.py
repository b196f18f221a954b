"""
時間區間

區間為半開區間 [begin, end)，end 為 None 表示仍在計時中。
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from .errors import InvalidIntervalError


@dataclass(frozen=True)
class TimeRange:
    begin: datetime
    end: Optional[datetime] = None

    @property
    def is_open(self) -> bool:
        return self.end is None

    def validate(self) -> None:
        """end 早於 begin 時拋出 InvalidIntervalError"""
        if self.end is not None and self.end < self.begin:
            raise InvalidIntervalError(
                f"End {self.end.isoformat()} must be after begin {self.begin.isoformat()}"
            )

    def duration(self, now: datetime) -> timedelta:
        """
        區間長度

        計時中的區間以 now 計算，now 早於 begin 時為 0
        """
        end = self.end if self.end is not None else now
        return max(end - self.begin, timedelta(0))


def overlaps(a: TimeRange, b: TimeRange) -> bool:
    """
    判斷兩個區間是否重疊

    兩個區間都會先檢查合法性；任一區間仍在計時中則視為不重疊。相鄰（一方的 end 等於另一方的 begin）不算重疊。
    """
    a.validate()
    b.validate()

    if a.end is None or b.end is None:
        return False

    return a.begin < b.end and b.begin < a.end
