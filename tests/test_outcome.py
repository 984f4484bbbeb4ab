# tests/test_outcome.py
import unittest

from editcoder.core.models import FileEdit
from editcoder.core.outcome import ExecutionOutcomeValidator
from editcoder.core.parser import edit_id_for


def _edit(path, content):
    return FileEdit(id=edit_id_for(path), path=path, content=content)


class TestExecutionOutcomeValidator(unittest.TestCase):

    def setUp(self):
        self.validator = ExecutionOutcomeValidator()

    def test_no_edits(self):
        outcome = self.validator.validate([], {}, {})
        self.assertFalse(outcome.changes_applied)
        self.assertEqual(outcome.no_op_explanation, "No edits were proposed")

    def test_real_change(self):
        edit = _edit("a.py", "x = 2\n")
        outcome = self.validator.validate([edit], {"a.py": "x = 1\n"}, {"a.py": "x = 2\n"})
        self.assertTrue(outcome.changes_applied)
        self.assertEqual(outcome.files_modified, 1)
        self.assertEqual(outcome.per_file_delta, {"a.py": True})
        self.assertIsNone(outcome.no_op_explanation)

    def test_identical_content_is_no_op(self):
        edit = _edit("a.py", "x = 1\n")
        outcome = self.validator.validate([edit], {"a.py": "x = 1\n"}, {"a.py": "x = 1\n"})
        self.assertFalse(outcome.changes_applied)
        self.assertIn("generated content identical to existing file", outcome.no_op_explanation)
        self.assertEqual(len(outcome.issues), 1)

    def test_new_file_counts_when_non_empty(self):
        outcome = self.validator.validate([_edit("new.txt", "hi\n")], {"new.txt": None}, {"new.txt": "hi\n"})
        self.assertTrue(outcome.changes_applied)

        empty = self.validator.validate([_edit("new.txt", "")], {"new.txt": None}, {"new.txt": ""})
        self.assertFalse(empty.changes_applied)
        self.assertIn("created an empty file", empty.issues[0])

    def test_partial_success_is_still_applied(self):
        edits = [_edit("a.py", "new\n"), _edit("b.py", "same\n")]
        outcome = self.validator.validate(
            edits,
            {"a.py": "old\n", "b.py": "same\n"},
            {"a.py": "new\n", "b.py": "same\n"},
        )
        self.assertTrue(outcome.changes_applied)
        self.assertEqual(outcome.per_file_delta, {"a.py": True, "b.py": False})
        self.assertEqual(outcome.files_modified, 1)

    def test_all_writes_failed(self):
        edit = _edit("a.py", "new\n")
        outcome = self.validator.validate(
            [edit], {"a.py": "old\n"}, {"a.py": "old\n"}, failures={"a.py": "Permission denied"}
        )
        self.assertFalse(outcome.changes_applied)
        self.assertEqual(outcome.no_op_explanation, "No file could be written")
        self.assertIn("Permission denied", outcome.issues[0])

    def test_content_unchanged_despite_different_edit(self):
        edit = _edit("a.py", "new\n")
        outcome = self.validator.validate([edit], {"a.py": "old\n"}, {"a.py": "old\n"})
        self.assertFalse(outcome.changes_applied)
        self.assertEqual(outcome.no_op_explanation, "Edits were applied but no file content changed")


if __name__ == "__main__":
    unittest.main()
