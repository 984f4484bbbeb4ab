# editcoder/core/prompt.py
from pathlib import Path
from typing import Dict, Iterable, Optional

import jinja2

from .models import ExecutionPlan, IntentKind
from .workspace import Workspace

# 📁 模板根目录（相对于当前文件）
TEMPLATES_DIR = Path(__file__).parent.parent / "templates"
ALIASES = {
    "turn": "turn.md.j2",
    "fix_syntax": "fix_syntax.md.j2",
    "config": "config.yaml.j2",
}

# 随提示词附带的文件内容上限，超过后只列出路径
MAX_INLINE_FILES = 8
MAX_INLINE_BYTES = 64_000


def create_jinja_env(templates_dir: Optional[Path] = None) -> jinja2.Environment:
    loader = jinja2.FileSystemLoader(str(templates_dir or TEMPLATES_DIR))
    return jinja2.Environment(
        loader=loader,
        autoescape=False,
        trim_blocks=True,
        lstrip_blocks=True,
        keep_trailing_newline=True,
        undefined=jinja2.StrictUndefined,
    )


def render_template(name: str, **values) -> str:
    env = create_jinja_env()
    return env.get_template(ALIASES.get(name, name)).render(**values)


def narrow_to_syntax_fix(intent: str) -> str:
    """受限重试的指令：只修语法，不扩大范围"""
    return render_template("fix_syntax", instruction=intent.strip()).strip()


class PromptBuilder:
    """把执行计划渲染为发给模型的一轮提示词"""

    def __init__(self, workspace: Optional[Workspace] = None, templates_dir: Optional[Path] = None):
        self.workspace = workspace
        self.env = create_jinja_env(templates_dir)

    def _inline_contents(self, paths: Iterable[str]) -> Dict[str, str]:
        contents: Dict[str, str] = {}
        if self.workspace is None:
            return contents
        budget = MAX_INLINE_BYTES
        for path in list(paths)[:MAX_INLINE_FILES]:
            content = self.workspace.read(path)
            if content is None or len(content) > budget:
                continue
            contents[path] = content
            budget -= len(content)
        return contents

    def build(self, plan: ExecutionPlan) -> str:
        """渲染一轮的提示词，范围内已存在的文件以文件块形式内联"""
        template = self.env.get_template(ALIASES["turn"])
        return template.render(
            instruction=plan.intent,
            scope_locked=plan.kind is IntentKind.FIX_SYNTAX,
            target_files=list(plan.target_files),
            file_contents=self._inline_contents(plan.target_files),
        )
