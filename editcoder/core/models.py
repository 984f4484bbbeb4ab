# editcoder/core/models.py
"""
editstream 核心数据模型
解析器、校验器、协调器与会话之间传递的值对象。
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple

# ------------------------------
# 编辑
# ------------------------------


@dataclass(frozen=True)
class FileEdit:
    id: str
    path: str  # 规范化的工作区相对路径 (POSIX)
    content: str  # 完整替换内容，不是补丁
    is_streaming: bool = False
    is_new: bool = False

    def to_dict(self) -> Dict:
        return {
            "id": self.id,
            "path": self.path,
            "is_streaming": self.is_streaming,
            "is_new": self.is_new,
            "size": len(self.content),
        }


@dataclass(frozen=True)
class CommandEdit:
    command: str
    description: Optional[str] = None
    is_destructive: bool = False  # 仅用于提示确认，不是安全边界

    def to_dict(self) -> Dict:
        return {
            "command": self.command,
            "description": self.description,
            "is_destructive": self.is_destructive,
        }


@dataclass(frozen=True)
class ParseResult:
    files: Tuple[FileEdit, ...] = ()
    commands: Tuple[CommandEdit, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.files and not self.commands


# ------------------------------
# 差异
# ------------------------------


class DiffKind(Enum):
    UNCHANGED = "unchanged"
    ADDED = "added"
    REMOVED = "removed"
    MODIFIED = "modified"


@dataclass(frozen=True)
class DiffRecord:
    line_number: Optional[int]
    content: str
    kind: DiffKind


@dataclass(frozen=True)
class DiffSummary:
    added: int = 0
    removed: int = 0
    unchanged: int = 0

    @property
    def has_changes(self) -> bool:
        return bool(self.added or self.removed)


# ------------------------------
# 输出校验
# ------------------------------


class ValidationKind(Enum):
    VALID = "valid"
    NO_OP = "no_op"
    INVALID_FORMAT = "invalid_format"
    SILENT_FAILURE = "silent_failure"


@dataclass(frozen=True)
class ValidationOutcome:
    kind: ValidationKind
    reason: Optional[str] = None

    @classmethod
    def valid(cls) -> "ValidationOutcome":
        return cls(ValidationKind.VALID)

    @classmethod
    def no_op(cls) -> "ValidationOutcome":
        return cls(ValidationKind.NO_OP)

    @classmethod
    def invalid_format(cls, reason: str) -> "ValidationOutcome":
        return cls(ValidationKind.INVALID_FORMAT, reason)

    @classmethod
    def silent_failure(cls) -> "ValidationOutcome":
        return cls(ValidationKind.SILENT_FAILURE)


# ------------------------------
# 代理状态
# ------------------------------


class AgentStateKind(Enum):
    IDLE = "idle"
    STREAMING = "streaming"
    VALIDATING = "validating"
    BLOCKED = "blocked"
    EMPTY = "empty"
    READY = "ready"


TERMINAL_KINDS = frozenset({AgentStateKind.BLOCKED, AgentStateKind.EMPTY, AgentStateKind.READY})


@dataclass(frozen=True)
class AgentState:
    kind: AgentStateKind
    reason: Optional[str] = None
    edits: Tuple[FileEdit, ...] = ()
    commands: Tuple[CommandEdit, ...] = ()

    @classmethod
    def idle(cls) -> "AgentState":
        return cls(AgentStateKind.IDLE)

    @classmethod
    def streaming(cls) -> "AgentState":
        return cls(AgentStateKind.STREAMING)

    @classmethod
    def validating(cls) -> "AgentState":
        return cls(AgentStateKind.VALIDATING)

    @classmethod
    def blocked(cls, reason: str) -> "AgentState":
        return cls(AgentStateKind.BLOCKED, reason=reason or "Blocked")

    @classmethod
    def empty(cls, reason: Optional[str] = None) -> "AgentState":
        return cls(AgentStateKind.EMPTY, reason=reason)

    @classmethod
    def ready(cls, edits, commands=()) -> "AgentState":
        return cls(AgentStateKind.READY, edits=tuple(edits), commands=tuple(commands))

    @property
    def is_terminal(self) -> bool:
        return self.kind in TERMINAL_KINDS

    def describe(self) -> str:
        """每个状态都有非空的展示文本"""
        if self.kind is AgentStateKind.IDLE:
            return "Idle: waiting for an instruction"
        if self.kind is AgentStateKind.STREAMING:
            return "Streaming: receiving edits from the model"
        if self.kind is AgentStateKind.VALIDATING:
            return "Validating the completed response"
        if self.kind is AgentStateKind.BLOCKED:
            return f"Blocked: {self.reason}"
        if self.kind is AgentStateKind.EMPTY:
            return f"No changes proposed: {self.reason or 'the model found nothing to change'}"
        parts = [f"{len(self.edits)} file edit(s)"]
        if self.commands:
            parts.append(f"{len(self.commands)} command(s)")
        return "Ready: " + ", ".join(parts)


# ------------------------------
# 执行结果
# ------------------------------


@dataclass
class ExecutionOutcome:
    changes_applied: bool
    per_file_delta: Dict[str, bool] = field(default_factory=dict)
    no_op_explanation: Optional[str] = None
    files_modified: int = 0
    issues: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return {
            "changes_applied": self.changes_applied,
            "per_file_delta": dict(self.per_file_delta),
            "no_op_explanation": self.no_op_explanation,
            "files_modified": self.files_modified,
            "issues": list(self.issues),
        }


@dataclass
class ApplyReport:
    written: List[str] = field(default_factory=list)
    failures: Dict[str, str] = field(default_factory=dict)
    outcome: Optional[ExecutionOutcome] = None

    @property
    def is_complete(self) -> bool:
        return bool(self.outcome and self.outcome.changes_applied)


# ------------------------------
# 意图与展开
# ------------------------------


class IntentKind(Enum):
    RENAME = "rename"
    REPLACE = "replace"
    REWRITE = "rewrite"
    REFACTOR = "refactor"
    GLOBAL_UPDATE = "global_update"
    FIX_SYNTAX = "fix_syntax"
    COMPLEX = "complex"


@dataclass(frozen=True)
class Intent:
    kind: IntentKind
    search: Optional[str] = None
    replacement: Optional[str] = None
    quoted: bool = False  # 搜索字面量是否由引号/反引号给出
    replacement_quoted: bool = False


@dataclass
class ExpansionResult:
    matched_files: List[str] = field(default_factory=list)
    deterministic_edits: List[FileEdit] = field(default_factory=list)
    was_expanded: bool = False
    intent: Optional[Intent] = None
    reason: Optional[str] = None

    @property
    def search_term(self) -> Optional[str]:
        return self.intent.search if self.intent else None

    @property
    def replacement(self) -> Optional[str]:
        return self.intent.replacement if self.intent else None


@dataclass
class ExecutionPlan:
    """与具体模型响应无关的可复用意图"""
    intent: str
    target_files: List[str] = field(default_factory=list)
    kind: IntentKind = IntentKind.COMPLEX

    def to_dict(self) -> Dict:
        return {"intent": self.intent, "target_files": list(self.target_files), "kind": self.kind.value}
