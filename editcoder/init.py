# editcoder/init.py
"""
项目初始化 (CLI 层渲染与校验)
渲染默认配置文件内容；实际写文件由 cli.py 负责。
"""

from pathlib import Path

import click
import yaml

from .core.config import EditStreamConfig
from .core.errors import ConfigError
from .core.prompt import render_template


def render_default_config(project_name: str = None) -> str:
    """用 jinja2 模板渲染带注释的默认 config.yaml"""
    project_name = project_name or Path(".").resolve().name
    return render_template("config", project_name=project_name, config=EditStreamConfig())


def validate_config_content(content: str) -> EditStreamConfig:
    """验证配置内容字符串的合法性，失败时中止 CLI"""
    click.echo("🔍 Validating configuration...")
    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        click.echo(click.style("❌ YAML syntax error!", fg="red"))
        click.echo(f"   {e}")
        raise click.Abort()

    if data is None:
        click.echo(click.style("⚠️ Configuration is empty, defaults will be used.", fg="yellow"))
        return EditStreamConfig()

    try:
        config = EditStreamConfig.from_dict(data)
    except ConfigError as e:
        click.echo(click.style(f"❌ {e}", fg="red"))
        raise click.Abort()

    click.echo(click.style(f"✅ tick interval: {config.tick_interval_ms} ms", fg="green"))
    click.echo(click.style(f"✅ strict format: {'on' if config.strict_format else 'off'}", fg="green"))
    click.echo(click.style(f"✅ ignore_dirs: {len(config.ignore_dirs)} entries", fg="green"))
    if config.destructive_patterns:
        click.echo(f"🛡️  extra destructive patterns: {len(config.destructive_patterns)}")
    click.echo(click.style("🎉 Configuration is valid!", fg="green"))
    return config
