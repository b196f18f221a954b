"""
工時調整匯出

把每一筆 Completed Work 調整以 JSON Lines 附加到本地檔案，
供其他系統（例如報表或訊息佇列的轉送程式）讀取。
"""

import asyncio
import json
import logging
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable, Union

from .cache import utc_now
from .models import TaskAdjustment

logger = logging.getLogger(__name__)


class AdjustmentOutbox:
    """寫入 JSON Lines 檔案的 AdjustmentSink"""

    def __init__(self, path: Union[str, Path], clock: Callable[[], datetime] = utc_now):
        self.path = Path(path).expanduser()
        self.clock = clock

    def _append(self, record: dict) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, 'a', encoding='utf-8') as f:
            f.write(json.dumps(record, ensure_ascii=False) + "\n")

    async def send(self, adjustment: TaskAdjustment) -> None:
        record = {
            "workItemId": adjustment.work_item_id,
            "adjustment": round(adjustment.hours, 4),
            "timestamp": self.clock().isoformat(),
        }
        await asyncio.to_thread(self._append, record)
        logger.debug(f"Queued adjustment for Work Item {adjustment.work_item_id}: {record['adjustment']}h")

    def read_all(self) -> list[TaskAdjustment]:
        """讀回所有已寫入的調整"""
        if not self.path.exists():
            return []
        adjustments = []
        with open(self.path, encoding='utf-8') as f:
            for line in f:
                if not line.strip():
                    continue
                record = json.loads(line)
                adjustments.append(TaskAdjustment(
                    work_item_id=record["workItemId"],
                    adjustment=timedelta(hours=record["adjustment"]),
                ))
        return adjustments

