# editcoder/utils/console.py
"""
统一的控制台输出工具，基于 rich 实现。
核心模块通过这里的函数输出日志；debug_log 只在 verbose 模式下打印。
"""
from typing import Any, Iterable, Optional, Sequence

from rich.console import Console as RichConsole
from rich.markup import escape
from rich.table import Table
from rich.theme import Theme

CUSTOM_THEME = Theme({
    "info": "cyan bold",
    "success": "green bold",
    "warning": "yellow bold",
    "error": "red bold",
    "heading": "bold underline",
    "path": "magenta",
    "added": "green",
    "removed": "red",
    "muted": "dim",
    "danger": "bold white on red",
})

console = RichConsole(theme=CUSTOM_THEME, soft_wrap=True)

_verbose = False


def set_verbose(enabled: bool) -> None:
    global _verbose
    _verbose = bool(enabled)


# --- 便捷输出函数 ---

def info(message: str):
    console.print(f"💡 [info]INFO[/info]: {escape(message)}")


def success(message: str):
    console.print(f"✅ [success]SUCCESS[/success]: {escape(message)}")


def warning(message: str):
    console.print(f"⚠️  [warning]WARNING[/warning]: {escape(message)}")


def error(message: str):
    console.print(f"❌ [error]ERROR[/error]: {escape(message)}")


def heading(title: str):
    console.print(f"\n🎯 [heading]{escape(title)}[/heading]\n")


def debug_log(message: str):
    """调试日志，仅在 --verbose 时输出"""
    if _verbose:
        console.print(f"[muted]🐞 {escape(message)}[/muted]", highlight=False)


# --- 交互式输入 ---

def confirm(prompt: str, default: bool = True) -> bool:
    """确认对话（Y/N）"""
    yes_no = "[Y/n]" if default else "[y/N]"
    response = console.input(f"❓ {escape(prompt)} {escape(yes_no)}: ").strip().lower()
    if not response:
        return default
    return response in ("y", "yes")


# --- 表格 ---

def print_table(rows: Iterable[Sequence[Any]], headers: Sequence[str], title: Optional[str] = None):
    table = Table(title=title, show_header=True, header_style="bold magenta")
    for h in headers:
        table.add_column(h)
    for row in rows:
        table.add_row(*[str(cell) for cell in row])
    console.print(table)


def styled(text: str, style: str) -> str:
    """返回带样式的字符串（用于拼接）"""
    return f"[{style}]{text}[/]"


def show_welcome():
    console.print("═" * 50, style="bold blue")
    console.print("✏️  [bold green]editstream[/bold green] - streaming edits you can verify")
    console.print("═" * 50, style="bold blue")
