# tests/test_cli.py
import json
import shutil
import tempfile
import unittest
from pathlib import Path

import yaml
from click.testing import CliRunner

from editflow.storage.file_session_store import FileSessionStore
from editcoder.cli import cli

from .helpers import build_response


class TestEditStreamCLI(unittest.TestCase):

    def setUp(self):
        """每个测试一个独立的工作区和响应目录"""
        self.root = Path(tempfile.mkdtemp())
        self.responses = Path(tempfile.mkdtemp())
        (self.root / "src").mkdir()
        (self.root / "src" / "app.py").write_text("from util import foo\n\nfoo()\n", encoding="utf-8")
        (self.root / "src" / "util.py").write_text("def foo():\n    return 1\n", encoding="utf-8")
        (self.root / "README.md").write_text("# Demo\n", encoding="utf-8")
        self.runner = CliRunner()

    def tearDown(self):
        shutil.rmtree(self.root, ignore_errors=True)
        shutil.rmtree(self.responses, ignore_errors=True)

    def _response(self, text, name="response.txt"):
        path = self.responses / name
        path.write_text(text, encoding="utf-8")
        return str(path)

    def _run(self, instruction, *args, **kwargs):
        return self.runner.invoke(cli, ["run", instruction, "--root", str(self.root), *args], **kwargs)

    def _read(self, relative):
        return (self.root / relative).read_text(encoding="utf-8")

    def _sessions(self):
        return FileSessionStore(str(self.root / ".editstream")).list_sessions()

    # --- init / validate ---

    def test_init_and_validate(self):
        result = self.runner.invoke(cli, ["init", "--root", str(self.root)])
        self.assertEqual(result.exit_code, 0, result.output)
        config_file = self.root / ".editstream" / "config.yaml"
        self.assertTrue(config_file.exists())
        self.assertEqual(yaml.safe_load(config_file.read_text(encoding="utf-8"))["tick_interval_ms"], 100)

        result = self.runner.invoke(cli, ["validate", "--file", str(config_file)])
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("Configuration is valid!", result.output)

    def test_init_keeps_existing_config_when_declined(self):
        self.runner.invoke(cli, ["init", "--root", str(self.root)])
        config_file = self.root / ".editstream" / "config.yaml"
        config_file.write_text("tick_interval_ms: 250\n", encoding="utf-8")

        result = self.runner.invoke(cli, ["init", "--root", str(self.root)], input="n\n")
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("Cancelled.", result.output)
        self.assertEqual(config_file.read_text(encoding="utf-8"), "tick_interval_ms: 250\n")

    def test_validate_rejects_bad_values(self):
        config_file = self.responses / "config.yaml"
        config_file.write_text("tick_interval_ms: fast\n", encoding="utf-8")
        result = self.runner.invoke(cli, ["validate", "--file", str(config_file)])
        self.assertEqual(result.exit_code, 1)
        self.assertIn("must be an integer", result.output)

    # --- run ---

    def test_run_applies_streamed_edits(self):
        response = self._response(build_response(("src/util.py", "def foo():\n    return 2")))
        result = self._run("Make foo return 2", "--response-file", response, "--yes", "--chunk-size", "3")
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("Applied changes to 1 file(s)", result.output)
        self.assertEqual(self._read("src/util.py"), "def foo():\n    return 2\n")

        sessions = self._sessions()
        self.assertEqual(len(sessions), 1)
        shown = self.runner.invoke(cli, ["history", "show", sessions[0]["session_id"], "--root", str(self.root), "--json"])
        self.assertEqual(shown.exit_code, 0, shown.output)
        record = json.loads(shown.output)
        self.assertEqual(record["status"], "applied")
        self.assertEqual(record["outcome"]["files_modified"], 1)

    def test_run_identical_content_is_not_success(self):
        response = self._response(build_response(("src/util.py", "def foo():\n    return 1")))
        result = self._run("Tidy util", "--response-file", response, "--yes")
        self.assertEqual(result.exit_code, 1)
        self.assertIn("No changes applied", result.output)
        self.assertIn("generated content identical to existing file", result.output)

    def test_run_rename_without_model(self):
        result = self._run("rename `foo` to `bar`", "--yes", "--no-diff")
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("Resolved without a model", result.output)
        self.assertEqual(self._read("src/app.py"), "from util import bar\n\nbar()\n")

    def test_run_without_transport_fails(self):
        result = self._run("Make it faster")
        self.assertEqual(result.exit_code, 1)
        self.assertIn("No model transport configured", result.output)

    def test_run_prose_response_is_blocked(self):
        response = self._response("Sure! Here's how I would approach it.")
        result = self._run("Make foo return 2", "--response-file", response, "--yes")
        self.assertEqual(result.exit_code, 1)
        self.assertIn("Blocked", result.output)
        self.assertEqual(self._read("src/util.py"), "def foo():\n    return 1\n")

    def test_run_no_op_response(self):
        response = self._response('{"noop": true}')
        result = self._run("Make foo return 1", "--response-file", response)
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("No changes proposed", result.output)

    def test_run_reject_leaves_files_alone(self):
        response = self._response(build_response(("README.md", "# Changed")))
        result = self._run("Retitle readme", "--response-file", response, input="n\n")
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("Rejected", result.output)
        self.assertEqual(self._read("README.md"), "# Demo\n")
        self.assertEqual(self._sessions()[0]["status"], "rejected")

    def test_run_select_by_path(self):
        response = self._response(build_response(
            ("src/util.py", "def foo():\n    return 2"),
            ("README.md", "# Changed"),
        ))
        result = self._run("Update both", "--response-file", response, "--select", "README.md", "--yes")
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertEqual(self._read("README.md"), "# Changed\n")
        self.assertEqual(self._read("src/util.py"), "def foo():\n    return 1\n")

    def test_run_select_unknown_edit(self):
        response = self._response(build_response(("README.md", "# Changed")))
        result = self._run("Retitle readme", "--response-file", response, "--select", "missing.txt", "--yes")
        self.assertEqual(result.exit_code, 2)

    def test_run_no_apply_only_previews(self):
        response = self._response(build_response(("README.md", "# Changed")))
        result = self._run("Retitle readme", "--response-file", response, "--no-apply")
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertEqual(self._read("README.md"), "# Demo\n")

    def test_run_rejects_two_transports(self):
        response = self._response("x")
        result = self._run("Anything", "--response-file", response, "--model-command", "cat")
        self.assertEqual(result.exit_code, 2)

    # --- expand / check / diff / history ---

    def test_expand_reports_deterministic_edits(self):
        result = self.runner.invoke(cli, ["expand", "rename `foo` to `bar`", "--root", str(self.root)])
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("Deterministic edits: 2", result.output)
        self.assertEqual(self._read("src/util.py"), "def foo():\n    return 1\n")

    def test_check_response_files(self):
        valid = self._response(build_response(("a.py", "x = 1"), commands=["pytest -q"]), "valid.txt")
        result = self.runner.invoke(cli, ["check", valid])
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("valid", result.output)

        chatty = self._response("Here you go:\n" + build_response(("a.py", "x = 1")), "chatty.txt")
        self.assertEqual(self.runner.invoke(cli, ["check", chatty]).exit_code, 1)
        self.assertEqual(self.runner.invoke(cli, ["check", chatty, "--lenient"]).exit_code, 0)

    def test_diff_command(self):
        original = self._response("a\nb\n", "old.txt")
        updated = self._response("a\nc\n", "new.txt")
        result = self.runner.invoke(cli, ["diff", original, updated])
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("Modified: +1 -1 lines", result.output)

    def test_history_list_and_missing_session(self):
        result = self.runner.invoke(cli, ["history", "list", "--root", str(self.root)])
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("No sessions recorded yet.", result.output)

        result = self.runner.invoke(cli, ["history", "show", "nope", "--root", str(self.root)])
        self.assertEqual(result.exit_code, 1)
        self.assertIn("Session not found", result.output)

    def test_version(self):
        result = self.runner.invoke(cli, ["--version"])
        self.assertEqual(result.exit_code, 0)
        self.assertIn("editstream v0.1.0", result.output)


if __name__ == "__main__":
    unittest.main()
