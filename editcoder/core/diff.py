# editcoder/core/diff.py
"""
按行位置对齐的差异预览。

第 i 行对第 i 行比较：相同为 unchanged，不同则先输出原行 removed 再输出新行 added。
O(n)，不是最小编辑距离；插入/删除会让后续行全部显示为改动。
"""

from typing import List, Optional

from .models import DiffKind, DiffRecord, DiffSummary


def diff(original: Optional[str], updated: str) -> List[DiffRecord]:
    """按行位置对齐的差异。original 为 None 时所有行都是新增。"""
    new_lines = updated.splitlines()
    if original is None:
        return [DiffRecord(i, line, DiffKind.ADDED) for i, line in enumerate(new_lines, start=1)]

    old_lines = original.splitlines()
    records: List[DiffRecord] = []
    for index in range(max(len(old_lines), len(new_lines))):
        line_number = index + 1
        old = old_lines[index] if index < len(old_lines) else None
        new = new_lines[index] if index < len(new_lines) else None
        if old is not None and old == new:
            records.append(DiffRecord(line_number, old, DiffKind.UNCHANGED))
            continue
        if old is not None:
            records.append(DiffRecord(line_number, old, DiffKind.REMOVED))
        if new is not None:
            records.append(DiffRecord(line_number, new, DiffKind.ADDED))
    return records


def summarize(records: List[DiffRecord]) -> DiffSummary:
    """统计新增、删除和未变的行数"""
    added = sum(1 for r in records if r.kind is DiffKind.ADDED)
    removed = sum(1 for r in records if r.kind is DiffKind.REMOVED)
    unchanged = sum(1 for r in records if r.kind is DiffKind.UNCHANGED)
    return DiffSummary(added=added, removed=removed, unchanged=unchanged)


def describe_change(original: Optional[str], updated: str) -> str:
    """一行变更摘要，用于编辑列表"""
    if original is None:
        count = len(updated.splitlines())
        return f"New file: {count} line{'s' if count != 1 else ''}"
    summary = summarize(diff(original, updated))
    if not summary.has_changes:
        if original != updated:
            return "Whitespace or line-ending changes only"
        return "No changes"
    return f"Modified: +{summary.added} -{summary.removed} lines"
