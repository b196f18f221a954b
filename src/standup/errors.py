"""
錯誤類型

所有服務層錯誤都繼承自 StandUpError，訊息一律為可直接顯示給使用者的單行文字。
"""


class StandUpError(Exception):
    """Stand-up 服務錯誤的基底類別"""


class NotFoundError(StandUpError):
    """上游找不到指定的資料（訊息中一定包含 ID）"""

    def __init__(self, kind: str, identifier):
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind} {identifier} was not found")


class InvalidOperationError(StandUpError):
    """前置條件不成立（錯誤的 work item 類型、錨點順序錯誤等）"""


class InvalidIntervalError(InvalidOperationError):
    """時間區間的結束早於開始"""


class ConcurrencyConflictError(StandUpError):
    """寫入時 revision 不符，代表有其他人同時修改"""

    def __init__(self, work_item_id: int, expected_revision: int):
        self.work_item_id = work_item_id
        self.expected_revision = expected_revision
        super().__init__(
            f"Work Item {work_item_id} was changed by someone else "
            f"(expected revision {expected_revision})"
        )


class UpstreamFailureError(StandUpError):
    """上游服務的連線、HTTP 或反序列化錯誤"""
