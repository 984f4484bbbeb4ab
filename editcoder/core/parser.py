# editcoder/core/parser.py
"""
结构化解析器：累积文本 -> 有序的文件编辑与命令。

纯函数，同样的输入得到同样的输出。编辑 id 只由路径派生，
所以对同一文本的前缀扩展重复解析时，已出现的文件保持同一个 id。
"""

import re
from typing import Callable, Dict, Iterable, List, Optional

from editflow.utils.checksum import short_checksum

from .errors import UnsafePathError
from .markers import CLOSE_FENCE_RE, CODE_FENCE_RE, Segment, SegmentKind, normalize_path, scan
from .models import CommandEdit, FileEdit, ParseResult
from ..utils.console import debug_log

# 命令的破坏性判断只是提示确认用的启发式规则，不是安全边界
DESTRUCTIVE_PATTERNS = [
    r"(^|[\s;&|(])rm\s",
    r"(^|[\s;&|(])rmdir\s",
    r"\bgit\s+push\b.*(\s--force\b|\s-f\b|\s--force-with-lease\b)",
    r"\bgit\s+reset\s+--hard\b",
    r"\bgit\s+clean\b.*\s-[a-z]*f",
    r"\bgit\s+branch\s+-D\b",
    r"\bdrop\s+(table|database|schema)\b",
    r"\btruncate\s+(table\s+)?\w",
    r"\bdelete\s+from\b",
    r"\bmkfs(\.\w+)?\b",
    r"\bdd\s+if=",
    r"\bchmod\s+-R\s+777\b",
    r"\bkubectl\s+delete\b",
    r"\bdocker\s+(rm|rmi|system\s+prune)\b",
    r">\s*/dev/sd[a-z]",
    r"\b(shutdown|reboot)\b",
]

_DESTRUCTIVE_RES = [re.compile(p, re.IGNORECASE) for p in DESTRUCTIVE_PATTERNS]

PathPredicate = Callable[[str], bool]


def edit_id_for(path: str) -> str:
    return "file-" + short_checksum(path)


def is_destructive(command: str, extra_patterns: Iterable[str] = ()) -> bool:
    if any(r.search(command) for r in _DESTRUCTIVE_RES):
        return True
    return any(re.search(p, command, re.IGNORECASE) for p in extra_patterns)


def _unwrap_fence(lines: List[str], complete: bool) -> List[str]:
    """
    只剥掉包住整个文件体的代码围栏：首行是开围栏、末行是闭围栏、中间没有其他围栏。
    流式阶段闭围栏可能还没到，此时只要后面没有围栏行就先隐藏开围栏。
    """
    if not lines or not CODE_FENCE_RE.match(lines[0]):
        return lines
    fences = [i for i, line in enumerate(lines[1:], 1) if CODE_FENCE_RE.match(line)]
    if fences == [len(lines) - 1] and CLOSE_FENCE_RE.match(lines[-1]):
        return lines[1:-1]
    if not complete and not fences:
        return lines[1:]
    return lines


def _file_content(segment: Segment, complete: bool) -> str:
    lines = _unwrap_fence(list(segment.lines), complete)
    if not lines:
        return ""
    content = "\n".join(lines)
    return content + "\n" if complete else content


def _commands(segment: Segment, extra_patterns: Iterable[str]) -> List[CommandEdit]:
    commands = []
    description: Optional[str] = None
    continued: List[str] = []

    def emit(line: str):
        nonlocal description
        commands.append(CommandEdit(
            command=line,
            description=description,
            is_destructive=is_destructive(line, extra_patterns),
        ))
        description = None

    for raw in segment.lines:
        line = raw.strip()
        if not line:
            continue
        if line.startswith("#") and not continued:
            description = line.lstrip("#").strip() or None
            continue
        if line.startswith("$ "):
            line = line[2:].strip()
        if line.endswith("\\"):
            continued.append(line[:-1].rstrip())
            continue
        if continued:
            line = " ".join(continued + [line])
            continued = []
        emit(line)

    if continued:
        emit(" ".join(continued))
    return commands


def parse(
    text: str,
    *,
    final: bool = False,
    is_known_path: Optional[PathPredicate] = None,
    extra_destructive_patterns: Iterable[str] = (),
) -> ParseResult:
    """
    解析累积文本。

    :param final: 流已结束。所有文件块标记为完成（未终止的块保留已收到的内容），
                  未闭合的命令围栏也会产出命令。
    :param is_known_path: 判断路径在工作区中是否已存在，用于设置 is_new。
    """
    files: Dict[str, FileEdit] = {}
    commands: List[CommandEdit] = []

    for segment in scan(text, final=final):
        if segment.kind is SegmentKind.FILE:
            try:
                path = normalize_path(segment.raw_path or "")
            except UnsafePathError as e:
                debug_log(f"Discarding file block: {e}")
                continue
            complete = segment.closed or final
            edit_id = edit_id_for(path)
            # 同一路径出现两次时后者覆盖前者，位置保持首次出现处
            files[edit_id] = FileEdit(
                id=edit_id,
                path=path,
                content=_file_content(segment, complete),
                is_streaming=not complete,
                is_new=not is_known_path(path) if is_known_path else False,
            )
        elif segment.kind is SegmentKind.COMMAND and (segment.closed or final):
            commands.extend(_commands(segment, extra_destructive_patterns))

    return ParseResult(files=tuple(files.values()), commands=tuple(commands))


class StructuralParser:
    """绑定了工作区判断与额外破坏性规则的解析器，供协调器注入使用"""

    def __init__(self, is_known_path: Optional[PathPredicate] = None, destructive_patterns: Iterable[str] = ()):
        self.is_known_path = is_known_path
        self.destructive_patterns = list(destructive_patterns)

    def __call__(self, text: str, final: bool = False) -> ParseResult:
        return parse(
            text,
            final=final,
            is_known_path=self.is_known_path,
            extra_destructive_patterns=self.destructive_patterns,
        )
