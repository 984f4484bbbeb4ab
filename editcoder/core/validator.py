# editcoder/core/validator.py
"""
输出校验器：只在流结束后对完整响应分类一次，首个命中的规则生效。

1. silent_failure  空或只有空白
2. no_op           显式的"无需修改"标记
3. invalid_format  识别出的块之外还有散文
4. valid
"""

import json
import re

from .markers import SegmentKind, scan
from .models import ValidationOutcome

# 整个响应（去掉首尾空白和结尾标点、忽略大小写）必须恰好是其中之一
NO_OP_SENTINELS = frozenset({
    "no changes needed",
    "no changes required",
    "no change needed",
    "no changes are needed",
    "nothing to change",
    "noop",
    "no-op",
    "no_op",
})

_NOOP_JSON_RE = re.compile(r"^\s*\{.*\}\s*$", re.DOTALL)


def _is_no_op_sentinel(text: str) -> bool:
    stripped = text.strip()
    if _NOOP_JSON_RE.match(stripped):
        try:
            data = json.loads(stripped)
        except json.JSONDecodeError:
            data = None
        if isinstance(data, dict) and data.get("noop") is True:
            return True

    lowered = " ".join(stripped.lower().split()).rstrip(".!")
    return lowered in NO_OP_SENTINELS


def validate(completed_text: str, strict: bool = True) -> ValidationOutcome:
    """
    :param strict: 禁止任何对话式输出。为 False 时只要存在可执行块就放过散文。
    """
    if not completed_text or not completed_text.strip():
        return ValidationOutcome.silent_failure()

    segments = scan(completed_text, final=True)
    has_blocks = any(s.kind is not SegmentKind.PROSE for s in segments)

    if not has_blocks and _is_no_op_sentinel(completed_text):
        return ValidationOutcome.no_op()

    prose = [
        line.strip()
        for s in segments
        if s.kind is SegmentKind.PROSE
        for line in s.lines
        if line.strip()
    ]
    if not has_blocks:
        return ValidationOutcome.invalid_format(
            f"Response contains no executable file edits (starts with: {prose[0][:80]!r})"
        )
    if strict and prose:
        return ValidationOutcome.invalid_format(
            f"Response contains prose outside file or command blocks: {prose[0][:80]!r}"
        )
    return ValidationOutcome.valid()
