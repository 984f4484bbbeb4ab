# editflow/core/models.py
"""
editflow 核心数据模型
定义了会话历史存储中使用的数据结构：会话状态、时间线事件与会话记录。
"""

from dataclasses import dataclass, field, asdict
from datetime import datetime
from enum import Enum
from typing import Dict, Any, List, Optional


class SessionStatus(Enum):
    CREATED = "created"
    STREAMING = "streaming"
    READY = "ready"
    BLOCKED = "blocked"
    EMPTY = "empty"
    APPLIED = "applied"
    NO_OP = "no_op"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


class TimelineEventType(Enum):
    SESSION_STARTED = "session_started"
    EXPANDED = "expanded"
    STREAMING_STARTED = "streaming_started"
    PROPOSALS_READY = "proposals_ready"
    BLOCKED = "blocked"
    EMPTY = "empty"
    ACCEPTED = "accepted"
    NO_OP = "no_op"
    APPLY_FAILED = "apply_failed"
    REJECTED = "rejected"
    RETRIED = "retried"
    INTENT_REUSED = "intent_reused"
    CANCELLED = "cancelled"


def _match_enum(enum_cls, value, default):
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, str):
        for member in enum_cls:
            if member.value == value.strip():
                return member
    return default


@dataclass
class TimelineEvent:
    event_type: TimelineEventType
    message: str = ""
    timestamp: float = field(default_factory=lambda: datetime.now().timestamp())
    data: Dict[str, Any] = field(default_factory=dict)  # 例如 files_modified、失败原因

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_type": self.event_type.value,
            "message": self.message,
            "timestamp": self.timestamp,
            "data": dict(self.data),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TimelineEvent":
        data = data.copy()
        data["event_type"] = _match_enum(
            TimelineEventType, data.get("event_type"), TimelineEventType.SESSION_STARTED
        )
        return cls(**data)


@dataclass
class SessionRecord:
    """一次编辑会话的可持久化快照"""
    session_id: str
    instruction: str
    status: SessionStatus = SessionStatus.CREATED
    plan: Optional[Dict[str, Any]] = None
    timeline: List[TimelineEvent] = field(default_factory=list)
    state_summary: str = ""
    edits: List[Dict[str, Any]] = field(default_factory=list)
    commands: List[Dict[str, Any]] = field(default_factory=list)
    outcome: Optional[Dict[str, Any]] = None
    parent_id: Optional[str] = None
    created_at: float = field(default_factory=lambda: datetime.now().timestamp())
    updated_at: float = field(default_factory=lambda: datetime.now().timestamp())

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        data["timeline"] = [event.to_dict() for event in self.timeline]
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SessionRecord":
        """
        从字典创建 SessionRecord，正确处理 status 和 timeline 字段。
        未知的状态字符串回退为 CREATED。
        """
        data = data.copy()
        data["status"] = _match_enum(SessionStatus, data.get("status"), SessionStatus.CREATED)

        raw_timeline = data.get("timeline") or []
        data["timeline"] = [
            event if isinstance(event, TimelineEvent) else TimelineEvent.from_dict(event)
            for event in raw_timeline
        ]
        known = set(cls.__dataclass_fields__)
        return cls(**{k: v for k, v in data.items() if k in known})
