# editcoder/core/outcome.py
"""
执行结果校验：比较应用前后的文件内容，证明至少发生了一处真实修改。
会话只有在这里返回 changes_applied=True 时才能显示为完成。
"""

from typing import Dict, Iterable, Optional

from .models import ExecutionOutcome, FileEdit

Snapshot = Dict[str, Optional[str]]


class ExecutionOutcomeValidator:

    def validate(
        self,
        edits_applied: Iterable[FileEdit],
        before: Snapshot,
        after: Snapshot,
        failures: Optional[Dict[str, str]] = None,
    ) -> ExecutionOutcome:
        """
        对比应用前后的快照，逐文件判断内容是否真的改变。

        :param edits_applied: 本次尝试应用的编辑
        :param before: 应用前的内容快照，新文件为 None
        :param after: 应用后的内容快照
        :param failures: 写入失败的路径及原因
        """
        edits = list(edits_applied)
        failures = failures or {}
        if not edits:
            return ExecutionOutcome(
                changes_applied=False,
                no_op_explanation="No edits were proposed",
            )

        per_file: Dict[str, bool] = {}
        issues = []
        for edit in edits:
            path = edit.path
            old = before.get(path)
            new = after.get(path)
            if old is None:
                changed = bool(new)
            else:
                changed = old != new
            per_file[path] = changed

            if changed:
                continue
            if path in failures:
                issues.append(f"Edit to '{path}' failed: {failures[path]}")
            elif old is None and new is None:
                issues.append(f"Edit to '{path}' was not written")
            elif old is None:
                issues.append(f"Edit to '{path}' created an empty file")
            elif new == edit.content:
                issues.append(f"Edit to '{path}' did not change file content: generated content identical to existing file")
            else:
                issues.append(f"Edit to '{path}' did not change file content")

        modified = sum(1 for changed in per_file.values() if changed)
        outcome = ExecutionOutcome(
            changes_applied=modified > 0,
            per_file_delta=per_file,
            files_modified=modified,
            issues=issues,
        )
        if not outcome.changes_applied:
            outcome.no_op_explanation = self._explain(edits, before, failures)
        return outcome

    @staticmethod
    def _explain(edits, before: Snapshot, failures: Dict[str, str]) -> str:
        if failures and len(failures) >= len(edits):
            return "No file could be written"
        if all(before.get(e.path) == e.content for e in edits):
            return "generated content identical to existing file"
        if failures:
            return "Some writes failed and the rest did not change any file"
        return "Edits were applied but no file content changed"
