"""
時間記錄描述解析

Kimai 描述欄位的每一行會被分類為一種 comment：
- D#12345 標題                       → WorkItem
- D#1000 父項標題 » D#2000 子項標題    → WorkItem（父、子兩筆）
- 🏆 / 🧱 / 🧠 開頭                    → Accomplishment / Impediment / Learning
- 其他                                 → Other

規則依固定順序比對，第一個符合的規則勝出。
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, Optional

from .models import WorkItem


class CommentType(Enum):
    WORK_ITEM = "WorkItem"
    ACCOMPLISHMENT = "Accomplishment"
    IMPEDIMENT = "Impediment"
    LEARNING = "Learning"
    OTHER = "Other"

    @property
    def icon(self) -> str:
        return _ICONS[self]


_ICONS = {
    CommentType.OTHER: "📝",
    CommentType.ACCOMPLISHMENT: "🏆",
    CommentType.IMPEDIMENT: "🧱",
    CommentType.LEARNING: "🧠",
    CommentType.WORK_ITEM: "#",
}

SCRUM_TYPES = (CommentType.ACCOMPLISHMENT, CommentType.IMPEDIMENT, CommentType.LEARNING)


@dataclass(frozen=True)
class Comment:
    """描述中的一行；WorkItem 類型另外帶有 (id, title) 清單，父項在前"""
    type: CommentType
    text: str
    work_items: tuple[tuple[int, str], ...] = ()


_PARENTED_WORK_ITEM = re.compile(
    r"^D#?(?P<parent_id>\d+)[\s-]*(?P<parent_title>.*)\s+D#?(?P<id>\d+)[\s-]*(?P<title>.*)$",
    re.IGNORECASE,
)
_WORK_ITEM = re.compile(r"^D#?(?P<id>\d+)[\s-]*(?P<title>.*)$", re.IGNORECASE)


def _clean_parent_title(title: str) -> str:
    return title.strip().rstrip("»").strip()


def _parented_work_item(line: str) -> Optional[Comment]:
    match = _PARENTED_WORK_ITEM.match(line)
    if not match:
        return None
    return Comment(
        CommentType.WORK_ITEM,
        line,
        (
            (int(match.group("parent_id")), _clean_parent_title(match.group("parent_title"))),
            (int(match.group("id")), match.group("title").strip()),
        ),
    )


def _work_item(line: str) -> Optional[Comment]:
    match = _WORK_ITEM.match(line)
    if not match:
        return None
    return Comment(
        CommentType.WORK_ITEM,
        line,
        ((int(match.group("id")), match.group("title").strip()),),
    )


def _icon_rule(comment_type: CommentType) -> Callable[[str], Optional[Comment]]:
    icon = comment_type.icon

    def rule(line: str) -> Optional[Comment]:
        if not line.startswith(icon):
            return None
        return Comment(comment_type, line[len(icon):].strip())

    return rule


# 比對順序即優先順序
_RULES: tuple[Callable[[str], Optional[Comment]], ...] = (
    _parented_work_item,
    _work_item,
    *(_icon_rule(t) for t in SCRUM_TYPES),
)


def classify(line: str) -> Comment:
    """分類單一行，沒有規則符合時為 Other"""
    for rule in _RULES:
        comment = rule(line)
        if comment is not None:
            return comment
    return Comment(CommentType.OTHER, line)


def parse(description: Optional[str]) -> list[Comment]:
    """
    解析描述欄位

    去除空白行與重複行（保留第一次出現的順序），每一行獨立分類。

    Args:
        description: Kimai 時間記錄的描述

    Returns:
        comment 列表，順序與原始行相同
    """
    if not description:
        return []

    lines = [line.strip() for line in description.split("\n")]
    unique_lines = dict.fromkeys(line for line in lines if line)
    return [classify(line) for line in unique_lines]


def join(comments: Iterable[Comment], predicate: Callable[[CommentType], bool]) -> Optional[str]:
    """把符合類型條件的 comment 以換行重新組合，沒有任何符合時回傳 None"""
    lines = [c.text for c in comments if predicate(c.type)]
    return "\n".join(lines) if lines else None


def format_comment(comment_type: CommentType, text: str) -> Optional[str]:
    """產生寫回 Kimai 描述的一行文字"""
    text = text.strip()
    if comment_type is CommentType.OTHER:
        return text or None
    if not text:
        return None
    return f"{comment_type.icon}{text}"


def format_work_item(task: WorkItem, parent: Optional[WorkItem] = None) -> str:
    """產生 work item 參照行，例如 D#1000 父項 » D#2000 子項"""
    line = f"D#{task.id} {task.title}"
    if parent is not None:
        line = f"D#{parent.id} {parent.title} » {line}"
    return line


def compose_description(comments: Iterable[Comment]) -> str:
    """把 comment 列表組回描述欄位（WorkItem 行保留原文）"""
    lines = []
    for comment in comments:
        if comment.type is CommentType.WORK_ITEM:
            line = comment.text.strip()
        else:
            line = format_comment(comment.type, comment.text)
        if line:
            lines.append(line)
    return "\n".join(dict.fromkeys(lines))
