# editcoder/core/errors.py
"""
editstream 异常层次。

解析阶段的丢弃（不安全路径等）不抛异常，只丢弃单个块；
校验失败是本轮的终止状态而不是异常。这里只定义需要调用方处理的错误。
"""

from typing import Optional


class EditStreamError(Exception):
    """所有 editstream 错误的基类"""


class ConfigError(EditStreamError):
    pass


class UnsafePathError(EditStreamError):
    def __init__(self, path: str, reason: str):
        super().__init__(f"Unsafe path {path!r}: {reason}")
        self.path = path
        self.reason = reason


class InvalidTransitionError(EditStreamError):
    def __init__(self, current, target):
        super().__init__(f"Illegal agent state transition: {current.value} -> {target.value}")
        self.current = current
        self.target = target


class SelectionError(EditStreamError):
    pass


class SessionStateError(EditStreamError):
    pass


class TransportError(EditStreamError):
    """模型传输层失败。status_code 为 None 表示没有拿到 HTTP 响应（网络层错误）"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code
