# editcoder/core/expander.py
"""
工作区确定性展开

对"把 X 重命名/替换为 Y"这类字面量指令，直接扫描工作区生成编辑，
完全不调用模型。无法安全机械改写时仍返回匹配到的文件，供模型缩小范围使用。
"""

import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Union

from .config import EditStreamConfig
from .models import ExpansionResult, FileEdit, Intent, IntentKind
from .parser import edit_id_for
from ..utils.console import debug_log

_LITERAL = r"(?:`[^`\n]+`|\"[^\"\n]+\"|'[^'\n]+'|.+?)"
_SCOPE_SUFFIX = (
    r"(?:\s+(?:everywhere|globally|in\s+all\s+files|across\s+the\s+(?:project|codebase|repo(?:sitory)?|workspace)))?"
)
_END = _SCOPE_SUFFIX + r"\s*[.!]?\s*$"

REPLACE_PATTERNS = [
    (IntentKind.RENAME, re.compile(
        rf"^\s*rename\s+(?P<search>{_LITERAL})\s+(?:to|as)\s+(?P<replacement>{_LITERAL}){_END}",
        re.IGNORECASE | re.DOTALL,
    )),
    (IntentKind.REPLACE, re.compile(
        rf"^\s*replace\s+(?:all\s+)?(?:occurrences\s+of\s+)?(?P<search>{_LITERAL})\s+with\s+(?P<replacement>{_LITERAL}){_END}",
        re.IGNORECASE | re.DOTALL,
    )),
    (IntentKind.REPLACE, re.compile(
        rf"^\s*(?:change|update|switch)\s+(?:all\s+)?(?P<search>{_LITERAL})\s+to\s+(?P<replacement>{_LITERAL}){_END}",
        re.IGNORECASE | re.DOTALL,
    )),
]

KEYWORD_PATTERNS = [
    (IntentKind.REWRITE, re.compile(r"\b(rewrite|re-?implement|from scratch)\b", re.IGNORECASE)),
    (IntentKind.REFACTOR, re.compile(r"\b(refactor|improve|optimi[sz]e|clean\s*up|restructure|simplify)\b", re.IGNORECASE)),
    (IntentKind.GLOBAL_UPDATE, re.compile(
        r"\b(everywhere|globally|all\s+files|across\s+the\s+(project|codebase|repo|workspace))\b", re.IGNORECASE
    )),
]

_QUOTED_RE = re.compile(r"`([^`\n]+)`|\"([^\"\n]+)\"|'([^'\n]+)'")
_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_IDENT_CHAR_RE = re.compile(r"[A-Za-z0-9_]")


def _unquote(literal: str):
    literal = literal.strip()
    if len(literal) >= 2 and literal[0] == literal[-1] and literal[0] in "`\"'":
        return literal[1:-1], True
    return literal, False


def classify_intent(instruction: str) -> Intent:
    for kind, pattern in REPLACE_PATTERNS:
        match = pattern.match(instruction)
        if not match:
            continue
        search, search_quoted = _unquote(match.group("search"))
        replacement, replacement_quoted = _unquote(match.group("replacement"))
        return Intent(
            kind=kind,
            search=search,
            replacement=replacement,
            quoted=search_quoted,
            replacement_quoted=replacement_quoted,
        )

    kind = IntentKind.COMPLEX
    for candidate, pattern in KEYWORD_PATTERNS:
        if pattern.search(instruction):
            kind = candidate
            break

    quoted = _QUOTED_RE.search(instruction)
    if quoted:
        literal = next(g for g in quoted.groups() if g)
        return Intent(kind=kind, search=literal, quoted=True)
    return Intent(kind=kind)


@dataclass
class FileMatch:
    path: str
    occurrences: int
    content: str


def _embedded_occurrence(content: str, literal: str) -> Optional[str]:
    """标识符字面量出现在更长的标识符内部时返回该上下文"""
    start = content.find(literal)
    while start != -1:
        end = start + len(literal)
        before = content[start - 1] if start > 0 else ""
        after = content[end] if end < len(content) else ""
        if (before and _IDENT_CHAR_RE.match(before)) or (after and _IDENT_CHAR_RE.match(after)):
            lo = start
            while lo > 0 and _IDENT_CHAR_RE.match(content[lo - 1]):
                lo -= 1
            hi = end
            while hi < len(content) and _IDENT_CHAR_RE.match(content[hi]):
                hi += 1
            return content[lo:hi]
        start = content.find(literal, end)
    return None


class WorkspaceEditExpander:

    def __init__(self, config: Optional[EditStreamConfig] = None):
        self.config = config or EditStreamConfig()

    def scan_workspace(self, root: Union[str, Path], literal: str) -> List[FileMatch]:
        """扫描工作区中包含字面量的文本文件，跳过隐藏目录、忽略目录、超大文件和二进制文件"""
        root = Path(root).resolve()
        needle = literal.encode("utf-8")
        ignored = set(self.config.ignore_dirs)
        matches = []

        for dirpath, dirnames, filenames in os.walk(root):
            dirnames[:] = sorted(d for d in dirnames if not d.startswith(".") and d not in ignored)
            for name in sorted(filenames):
                if name.startswith("."):
                    continue
                full = Path(dirpath) / name
                try:
                    if full.is_symlink() or full.stat().st_size > self.config.max_file_bytes:
                        continue
                    data = full.read_bytes()
                except OSError as e:
                    debug_log(f"Skipping unreadable file {full}: {e}")
                    continue
                if needle not in data or b"\x00" in data:
                    continue
                try:
                    content = data.decode("utf-8")
                except UnicodeDecodeError:
                    continue
                rel = full.relative_to(root).as_posix()
                matches.append(FileMatch(rel, content.count(literal), content))

        matches.sort(key=lambda m: m.path)
        return matches

    def _rewrite_problem(self, intent: Intent, matches: List[FileMatch]) -> Optional[str]:
        if intent.kind not in (IntentKind.RENAME, IntentKind.REPLACE):
            return f"{intent.kind.value} intent needs the model"
        if not intent.replacement:
            return "No replacement literal given"
        if intent.search == intent.replacement:
            return "Search and replacement literals are identical"
        if not intent.quoted and re.search(r"\s", intent.search):
            return f"Ambiguous target {intent.search!r}: quote multi-word literals"
        if not intent.replacement_quoted and re.search(r"\s", intent.replacement):
            return f"Ambiguous replacement {intent.replacement!r}: quote multi-word literals"
        if _IDENTIFIER_RE.match(intent.search):
            for m in matches:
                embedded = _embedded_occurrence(m.content, intent.search)
                if embedded:
                    return (
                        f"Ambiguous target {intent.search!r}: also appears inside "
                        f"{embedded!r} in {m.path}"
                    )
        return None

    def expand(self, instruction: str, root: Union[str, Path]) -> ExpansionResult:
        """
        对指令做意图分类并扫描工作区。

        只有改写无歧义时才生成 deterministic_edits，否则只返回匹配到的文件作为范围。
        不写任何文件。
        """
        intent = classify_intent(instruction)
        if not intent.search:
            return ExpansionResult(intent=intent, reason="No literal target in instruction")

        matches = self.scan_workspace(root, intent.search)
        result = ExpansionResult(matched_files=[m.path for m in matches], intent=intent)
        if not matches:
            result.reason = f"No files contain {intent.search!r}"
            return result

        problem = self._rewrite_problem(intent, matches)
        if problem:
            debug_log(f"Expansion declined: {problem}")
            result.reason = problem
            return result

        for m in matches:
            updated = m.content.replace(intent.search, intent.replacement)
            if updated == m.content:
                continue
            result.deterministic_edits.append(FileEdit(
                id=edit_id_for(m.path),
                path=m.path,
                content=updated,
                is_streaming=False,
                is_new=False,
            ))
        result.was_expanded = bool(result.deterministic_edits)
        total = sum(m.occurrences for m in matches)
        result.reason = f"Replaced {total} occurrence(s) of {intent.search!r} in {len(matches)} file(s)"
        return result
