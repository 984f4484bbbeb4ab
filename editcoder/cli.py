# editcoder/cli.py
"""
editstream CLI 主入口
"""
import asyncio
import json
from pathlib import Path
from typing import List, Optional

import click
from rich.panel import Panel

from editflow.core.models import SessionRecord
from editflow.storage.file_session_store import FileSessionStore

from editcoder.core.config import CONFIG_FILE, EditStreamConfig, config_path, load_config
from editcoder.core.diff import describe_change, diff as line_diff
from editcoder.core.errors import ConfigError, EditStreamError
from editcoder.core.expander import WorkspaceEditExpander
from editcoder.core.models import AgentStateKind, DiffKind, ValidationKind
from editcoder.core.parser import parse
from editcoder.core.session import EditSession
from editcoder.core.transport import ReplayTransport, SubprocessTransport
from editcoder.core.validator import validate as validate_response
from editcoder.core.workspace import Workspace
from editcoder.init import render_default_config, validate_config_content
from editcoder.utils.console import (
    console, info, success, warning, error,
    heading, show_welcome, confirm, print_table, set_verbose, styled,
)

MAX_PREVIEW_LINES = 40

# ------------------------------
# CLI 主入口
# ------------------------------


@click.group(invoke_without_command=True)
@click.version_option("0.1.0", message="editstream v%(version)s")
@click.option("--verbose", "-v", is_flag=True, help="Print debug logs.")
@click.pass_context
def cli(ctx, verbose):
    """✏️  editstream - turn streamed model output into verified file edits"""
    set_verbose(verbose)
    if ctx.invoked_subcommand is None:
        show_welcome()
        click.echo(ctx.get_help())


# ------------------------------
# 辅助函数
# ------------------------------


def _load_config_or_abort(root: Path) -> EditStreamConfig:
    try:
        return load_config(config_path(root))
    except ConfigError as e:
        error(f"Invalid configuration: {e}")
        raise click.Abort()


def _render_diff(original: Optional[str], updated: str, limit: int = MAX_PREVIEW_LINES):
    records = line_diff(original, updated)
    shown = 0
    for record in records:
        if record.kind is DiffKind.UNCHANGED:
            continue
        if shown >= limit:
            console.print(styled(f"  ... {len(records)} records total, output truncated", "muted"))
            break
        sign, style = ("+", "added") if record.kind is DiffKind.ADDED else ("-", "removed")
        console.print(f"{record.line_number:>5} {sign} {record.content}", style=style, markup=False, highlight=False)
        shown += 1
    if shown == 0:
        console.print(styled("  (no line changes)", "muted"))


def _show_proposals(session: EditSession, show_diffs: bool):
    state = session.state
    rows = []
    for edit in state.edits:
        original = session.workspace.read(edit.path) if session.workspace.exists(edit.path) else None
        rows.append([edit.id, edit.path, "new" if original is None else "modified", describe_change(original, edit.content)])
    if rows:
        print_table(rows, headers=["ID", "Path", "Kind", "Change"], title="Proposed file edits")

    if state.commands:
        cmd_rows = []
        for command in state.commands:
            flag = "⚠️  destructive" if command.is_destructive else ""
            cmd_rows.append([command.command, command.description or "", flag])
        print_table(cmd_rows, headers=["Command", "Description", ""], title="Proposed commands (not executed)")

    if show_diffs:
        for edit in state.edits:
            original = session.workspace.read(edit.path) if session.workspace.exists(edit.path) else None
            console.print(f"\n[path]{edit.path}[/path]")
            _render_diff(original, edit.content)


def _resolve_selection(session: EditSession, selectors: List[str]) -> List[str]:
    """--select 可以是编辑 id，也可以是路径"""
    by_path = {e.path: e.id for e in session.state.edits}
    ids = {e.id for e in session.state.edits}
    chosen = []
    for selector in selectors:
        if selector in ids:
            chosen.append(selector)
        elif selector in by_path:
            chosen.append(by_path[selector])
        else:
            raise click.BadParameter(f"No proposed edit matches '{selector}'", param_hint="--select")
    return chosen


# ------------------------------
# 命令: init / validate
# ------------------------------


@cli.command()
@click.option("--root", type=click.Path(file_okay=False, path_type=Path), default=".", show_default=True)
@click.option("--force", is_flag=True, help="Overwrite an existing configuration without asking.")
def init(root, force):
    """🔧 Create .editstream/config.yaml with default settings"""
    heading("Project Initialization")
    target = config_path(root)
    if target.exists() and not force:
        if not confirm(f"{target} already exists. Overwrite?", default=False):
            info("Cancelled.")
            return
    try:
        content = render_default_config(Path(root).resolve().name)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")
    except OSError as e:
        error(f"Initialization failed: {e}")
        raise click.Abort()
    success(f"Generated: {target}")


@cli.command()
@click.option("--file", "config_file", type=click.Path(dir_okay=False, path_type=Path), default=None,
              help=f"Configuration file (default: .editstream/{CONFIG_FILE}).")
def validate(config_file):
    """🔍 Validate the configuration file"""
    target = config_file or config_path(".")
    if not target.exists():
        error(f"Configuration file not found: {target}. Run `editstream init` first.")
        raise click.Abort()
    validate_config_content(target.read_text(encoding="utf-8"))


# ------------------------------
# 命令: run
# ------------------------------


@cli.command()
@click.argument("instruction")
@click.option("--root", type=click.Path(exists=True, file_okay=False, path_type=Path), default=".", show_default=True)
@click.option("--response-file", type=click.Path(exists=True, dir_okay=False, path_type=Path),
              help="Replay a recorded model response instead of calling a model.")
@click.option("--model-command", help="Shell command that reads the prompt on stdin and streams the response.")
@click.option("--chunk-size", default=16, show_default=True, help="Fragment size when replaying a response file.")
@click.option("--select", "selectors", multiple=True, help="Edit id or path to apply (repeatable). Default: all.")
@click.option("--yes", "-y", is_flag=True, help="Apply without asking for confirmation.")
@click.option("--no-apply", is_flag=True, help="Only show the proposed edits.")
@click.option("--diff/--no-diff", "show_diffs", default=True, show_default=True, help="Show line previews.")
@click.pass_context
def run(ctx, instruction, root, response_file, model_command, chunk_size, selectors, yes, no_apply, show_diffs):
    """🚀 Run one edit session for INSTRUCTION"""
    if response_file and model_command:
        raise click.UsageError("Use either --response-file or --model-command, not both.")

    config = _load_config_or_abort(root)
    workspace = Workspace(root)
    transport = None
    if response_file:
        transport = ReplayTransport.from_file(response_file, chunk_size=chunk_size)
    elif model_command:
        transport = SubprocessTransport(model_command)

    store = FileSessionStore(str(workspace.root / config.state_dir))
    session = EditSession(instruction, workspace=workspace, transport=transport, config=config, store=store)

    heading(f"Session {session.session_id}")
    try:
        with console.status("Waiting for edits...", spinner="dots"):
            state = asyncio.run(session.start())
    except EditStreamError as e:
        error(str(e))
        if session.expansion and session.expansion.matched_files:
            info(f"Files matching the request: {', '.join(session.expansion.matched_files)}")
        ctx.exit(1)

    if session.expansion and session.expansion.was_expanded:
        info(f"Resolved without a model: {session.expansion.reason}")

    if state.kind is AgentStateKind.BLOCKED:
        error(state.describe())
        ctx.exit(1)
    if state.kind is AgentStateKind.EMPTY:
        info(state.describe())
        return

    _show_proposals(session, show_diffs)
    if no_apply or not state.edits:
        info(session.summary())
        return

    if selectors:
        chosen = _resolve_selection(session, selectors)
        session.deselect(session.selected_ids)
        session.select(chosen)

    count = len(session.selected_ids)
    if not yes and not confirm(f"Apply {count} edit(s)?", default=True):
        asyncio.run(session.reject())
        info("Rejected. No files were changed.")
        return

    report = asyncio.run(session.accept())
    for path, reason in report.failures.items():
        error(f"{path}: {reason}")
    for issue in report.outcome.issues:
        warning(issue)
    if session.is_complete:
        success(session.summary())
    else:
        error(session.summary())
        ctx.exit(1)


# ------------------------------
# 命令: expand / check / diff
# ------------------------------


@cli.command()
@click.argument("instruction")
@click.option("--root", type=click.Path(exists=True, file_okay=False, path_type=Path), default=".", show_default=True)
def expand(instruction, root):
    """🔎 Show how INSTRUCTION would be resolved without a model"""
    config = _load_config_or_abort(root)
    result = WorkspaceEditExpander(config).expand(instruction, root)
    intent = result.intent
    heading("Workspace Expansion")
    console.print(f"Intent: [info]{intent.kind.value}[/info]")
    if intent.search:
        console.print(f"Search: {intent.search!r}" + (f"  Replacement: {intent.replacement!r}" if intent.replacement else ""),
                      markup=False)
    if result.matched_files:
        print_table([[p] for p in result.matched_files], headers=["Matched file"])
    if result.was_expanded:
        success(f"Deterministic edits: {len(result.deterministic_edits)} ({result.reason})")
    else:
        warning(f"Needs the model: {result.reason}")


@cli.command()
@click.argument("response_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--lenient", is_flag=True, help="Allow prose next to file blocks.")
@click.pass_context
def check(ctx, response_file, lenient):
    """🧪 Validate and parse a completed model response"""
    text = response_file.read_text(encoding="utf-8")
    outcome = validate_response(text, strict=not lenient)
    result = parse(text, final=True)

    heading("Response Check")
    console.print(Panel(f"{outcome.kind.value}" + (f"\n{outcome.reason}" if outcome.reason else ""),
                        title="Validation"))
    if result.files:
        print_table([[e.id, e.path, len(e.content.splitlines())] for e in result.files],
                    headers=["ID", "Path", "Lines"], title="File blocks")
    if result.commands:
        print_table([[c.command, "yes" if c.is_destructive else "no"] for c in result.commands],
                    headers=["Command", "Destructive"], title="Commands")
    if outcome.kind not in (ValidationKind.VALID, ValidationKind.NO_OP):
        ctx.exit(1)


@cli.command(name="diff")
@click.argument("original", type=click.Path(dir_okay=False, path_type=Path))
@click.argument("updated", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def diff_command(original, updated):
    """📄 Preview line changes from ORIGINAL to UPDATED (ORIGINAL may not exist)"""
    old = original.read_text(encoding="utf-8") if original.exists() else None
    new = updated.read_text(encoding="utf-8")
    heading(f"{original} -> {updated}")
    console.print(describe_change(old, new))
    _render_diff(old, new, limit=10_000)


# ------------------------------
# 命令: history
# ------------------------------


@cli.group()
def history():
    """🕘 Inspect stored edit sessions"""


def _open_store(root: Path) -> FileSessionStore:
    config = _load_config_or_abort(root)
    return FileSessionStore(str(Path(root).resolve() / config.state_dir))


@history.command(name="list")
@click.option("--root", type=click.Path(exists=True, file_okay=False, path_type=Path), default=".", show_default=True)
def history_list(root):
    """List sessions, newest first"""
    sessions = _open_store(root).list_sessions()
    if not sessions:
        info("No sessions recorded yet.")
        return
    rows = [[s["session_id"], s["status"], (s.get("instruction") or "")[:60]] for s in sessions]
    print_table(rows, headers=["Session", "Status", "Instruction"], title="Edit sessions")


@history.command(name="show")
@click.argument("session_id")
@click.option("--root", type=click.Path(exists=True, file_okay=False, path_type=Path), default=".", show_default=True)
@click.option("--json", "as_json", is_flag=True, help="Print the raw record.")
@click.pass_context
def history_show(ctx, session_id, root, as_json):
    """Show one session's timeline"""
    data = _open_store(root).load_session(session_id)
    if data is None:
        error(f"Session not found: {session_id}")
        ctx.exit(1)
    if as_json:
        click.echo(json.dumps(data, indent=2, ensure_ascii=False))
        return

    record = SessionRecord.from_dict(data)
    heading(f"Session {record.session_id}")
    console.print(f"Instruction: {record.instruction}", markup=False)
    console.print(f"Status: [info]{record.status.value}[/info]")
    console.print(f"Summary: {record.state_summary}", markup=False)
    rows = [[event.event_type.value, event.message] for event in record.timeline]
    print_table(rows, headers=["Event", "Message"], title="Timeline")


if __name__ == "__main__":
    cli()
