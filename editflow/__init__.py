# editflow/__init__.py
"""
editflow - 编辑会话历史的持久化层。
记录每个会话的指令、时间线、提示词与原始响应，供 CLI 回放查看。
"""

from .core.models import SessionStatus, TimelineEventType, TimelineEvent, SessionRecord
from .storage.file_session_store import FileSessionStore

__all__ = [
    "SessionStatus",
    "TimelineEventType",
    "TimelineEvent",
    "SessionRecord",
    "FileSessionStore",
]
