# editcoder/__init__.py
"""
editcoder - 流式编辑管线：把模型逐段输出的文本变成经过校验、可应用的文件编辑。
"""

from .core.coordinator import ThrottledUpdateCoordinator
from .core.diff import diff
from .core.expander import WorkspaceEditExpander
from .core.outcome import ExecutionOutcomeValidator
from .core.parser import parse
from .core.session import EditSession
from .core.validator import validate

__version__ = "0.1.0"

__all__ = [
    "ThrottledUpdateCoordinator",
    "WorkspaceEditExpander",
    "ExecutionOutcomeValidator",
    "EditSession",
    "parse",
    "diff",
    "validate",
]
