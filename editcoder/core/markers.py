# editcoder/core/markers.py
"""
响应文本的块语法，解析器和输出校验器共用。

    BEGIN FILE path/to/file.py
    ...完整文件内容...
    END FILE

    ```bash
    # 可选说明
    pytest -q
    ```

其余行都是散文 (prose)。扫描按行进行，只认行首标记，块不嵌套：
文件块内部除 END FILE 之外的任何行都是内容。
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import PurePosixPath
from typing import List, Optional

from .errors import UnsafePathError

BEGIN_FILE_RE = re.compile(r"^\s*BEGIN FILE(?::\s*|\s+)(?P<path>\S.*?)\s*$")
END_FILE_RE = re.compile(r"^\s*END FILE\s*$")
END_FILE_TOKEN = "END FILE"
COMMAND_FENCE_RE = re.compile(r"^\s*```\s*(?:bash|sh|shell|zsh|console|terminal)\s*$", re.IGNORECASE)
CODE_FENCE_RE = re.compile(r"^\s*```[\w+#.-]*\s*$")
CLOSE_FENCE_RE = re.compile(r"^\s*```\s*$")

_DRIVE_RE = re.compile(r"^[A-Za-z]:")


class SegmentKind(Enum):
    FILE = "file"
    COMMAND = "command"
    PROSE = "prose"


@dataclass
class Segment:
    kind: SegmentKind
    lines: List[str] = field(default_factory=list)
    raw_path: Optional[str] = None
    closed: bool = False
    # 流式阶段暂不计入内容的行（可能是结束标记的前缀）
    pending: Optional[str] = None


def scan(text: str, final: bool = False) -> List[Segment]:
    """
    把累积文本切成有序的段。

    最后一个换行之后的残行 (tail) 还可能继续增长：
    流式阶段它不会开启新块，也不会以半截结束标记的形式进入内容。
    final=True 时 tail 按完整行处理。
    """
    lines = text.split("\n")
    tail = lines.pop()

    segments: List[Segment] = []
    current: Optional[Segment] = None

    def feed(line: str) -> None:
        nonlocal current
        if current is not None and current.kind is SegmentKind.FILE:
            if END_FILE_RE.match(line):
                current.closed = True
                current = None
            else:
                current.lines.append(line)
            return
        if current is not None and current.kind is SegmentKind.COMMAND:
            if CLOSE_FENCE_RE.match(line):
                current.closed = True
                current = None
            else:
                current.lines.append(line)
            return

        match = BEGIN_FILE_RE.match(line)
        if match:
            current = Segment(SegmentKind.FILE, raw_path=match.group("path"))
            segments.append(current)
            return
        if COMMAND_FENCE_RE.match(line):
            current = Segment(SegmentKind.COMMAND)
            segments.append(current)
            return

        if segments and segments[-1].kind is SegmentKind.PROSE:
            segments[-1].lines.append(line)
        else:
            segments.append(Segment(SegmentKind.PROSE, lines=[line]))

    for line in lines:
        feed(line)

    if final:
        if tail:
            feed(tail)
    elif tail and current is not None:
        if current.kind is SegmentKind.FILE:
            if END_FILE_RE.match(tail):
                current.closed = True
            elif END_FILE_TOKEN.startswith(tail.lstrip()):
                current.pending = tail
            elif not current.lines and (tail.lstrip().startswith("```") or "```".startswith(tail.lstrip())):
                # 可能是包裹内容的代码围栏，等整行到达再决定
                current.pending = tail
            else:
                current.lines.append(tail)
        elif CLOSE_FENCE_RE.match(tail):
            current.closed = True
        else:
            current.pending = tail

    return segments


def normalize_path(raw: str) -> str:
    """
    把块头里的路径规范化为工作区相对 POSIX 路径。
    绝对路径、盘符、.. 段、NUL 与空路径一律拒绝。
    """
    path = raw.strip().strip("`'\"").strip()
    if not path:
        raise UnsafePathError(raw, "empty path")
    if "\x00" in path:
        raise UnsafePathError(raw, "NUL byte")
    path = path.replace("\\", "/")
    if path.startswith("/") or path.startswith("~") or _DRIVE_RE.match(path):
        raise UnsafePathError(raw, "absolute path")

    parts = [p for p in path.split("/") if p not in ("", ".")]
    if not parts:
        raise UnsafePathError(raw, "empty path")
    if any(p == ".." for p in parts):
        raise UnsafePathError(raw, "parent traversal")
    return str(PurePosixPath(*parts))
