# editcoder/core/config.py
"""
配置加载：.editstream/config.yaml -> EditStreamConfig
文件不存在时使用默认值；类型错误抛出 ConfigError；未知键给出警告。
"""

import re
from dataclasses import dataclass, field, fields, asdict
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from .errors import ConfigError
from ..utils.console import warning

STATE_DIR = ".editstream"
CONFIG_FILE = "config.yaml"

DEFAULT_IGNORE_DIRS = [
    ".git",
    ".hg",
    ".svn",
    ".editstream",
    "node_modules",
    "__pycache__",
    ".venv",
    "venv",
    "build",
    "dist",
    ".tox",
    ".mypy_cache",
    ".pytest_cache",
]


@dataclass
class EditStreamConfig:
    tick_interval_ms: int = 100
    display_interval_ms: int = 33
    display_chars_per_tick: int = 48
    write_delay_ms: int = 10
    strict_format: bool = True
    max_file_bytes: int = 1_000_000
    ignore_dirs: List[str] = field(default_factory=lambda: list(DEFAULT_IGNORE_DIRS))
    destructive_patterns: List[str] = field(default_factory=list)
    state_dir: str = STATE_DIR

    @property
    def tick_interval(self) -> float:
        return self.tick_interval_ms / 1000.0

    @property
    def display_interval(self) -> float:
        return self.display_interval_ms / 1000.0

    @property
    def write_delay(self) -> float:
        return self.write_delay_ms / 1000.0

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "EditStreamConfig":
        if data is None:
            return cls()
        if not isinstance(data, dict):
            raise ConfigError("Configuration must be a YAML mapping")

        known = {f.name: f for f in fields(cls)}
        values = {}
        for key, value in data.items():
            if key not in known:
                warning(f"Unknown configuration key ignored: {key}")
                continue
            values[key] = _check_type(key, value, known[key].default)

        config = cls(**values)
        if config.tick_interval_ms <= 0:
            raise ConfigError("tick_interval_ms must be positive")
        if config.display_interval_ms <= 0:
            raise ConfigError("display_interval_ms must be positive")
        if config.display_chars_per_tick <= 0:
            raise ConfigError("display_chars_per_tick must be positive")
        if config.write_delay_ms < 0:
            raise ConfigError("write_delay_ms must not be negative")
        for pattern in config.destructive_patterns:
            try:
                re.compile(pattern)
            except re.error as e:
                raise ConfigError(f"Invalid destructive pattern {pattern!r}: {e}") from e
        return config

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _check_type(key: str, value: Any, default: Any) -> Any:
    # bool 是 int 的子类，需要单独判断
    if key in ("ignore_dirs", "destructive_patterns"):
        if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
            raise ConfigError(f"{key} must be a list of strings")
        return list(value)
    if key == "strict_format":
        if not isinstance(value, bool):
            raise ConfigError(f"{key} must be true or false")
        return value
    if key == "state_dir":
        if not isinstance(value, str) or not value.strip():
            raise ConfigError(f"{key} must be a non-empty string")
        return value
    if isinstance(default, int):
        if isinstance(value, bool) or not isinstance(value, int):
            raise ConfigError(f"{key} must be an integer, got {type(value).__name__}")
    return value


def config_path(root: Union[str, Path] = ".") -> Path:
    return Path(root) / STATE_DIR / CONFIG_FILE


def load_config(path: Optional[Union[str, Path]] = None) -> EditStreamConfig:
    """读取 YAML 配置；文件缺失时返回默认配置"""
    path = Path(path) if path else config_path()
    if not path.exists():
        return EditStreamConfig()
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    return EditStreamConfig.from_dict(data)
