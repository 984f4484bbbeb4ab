# tests/conftest.py
"""
editstream 测试配置和共享 fixtures
"""

import pytest

from editcoder.core.config import EditStreamConfig
from editcoder.core.workspace import Workspace


@pytest.fixture
def fast_config():
    """缩短 tick 间隔，让基于真实时钟的异步测试更快结束"""
    return EditStreamConfig(tick_interval_ms=5, display_interval_ms=1, write_delay_ms=0)


@pytest.fixture
def workspace_dir(tmp_path):
    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "app.py").write_text("from util import foo\n\nfoo()\n", encoding="utf-8")
    (tmp_path / "src" / "util.py").write_text("def foo():\n    return 1\n", encoding="utf-8")
    (tmp_path / "README.md").write_text("# Demo\n", encoding="utf-8")
    return tmp_path


@pytest.fixture
def workspace(workspace_dir):
    return Workspace(workspace_dir)
