# editcoder/core/workspace.py
"""
文件系统协作者：工作区内的读、写与快照。
写入是单文件原子的：先写同目录临时文件，再 os.replace 覆盖目标。
"""

import os
import tempfile
from pathlib import Path
from typing import Dict, Iterable, Optional, Union

from .errors import UnsafePathError
from .markers import normalize_path


class Workspace:
    def __init__(self, root: Union[str, Path] = "."):
        self.root = Path(root).resolve()

    def resolve(self, path: str) -> Path:
        """相对路径 -> 绝对路径；解析符号链接后仍须位于工作区内"""
        relative = normalize_path(path)
        target = (self.root / relative).resolve()
        if target != self.root and self.root not in target.parents:
            raise UnsafePathError(path, "resolves outside the workspace")
        return target

    def exists(self, path: str) -> bool:
        """路径在工作区内且是一个已存在的文件"""
        try:
            return self.resolve(path).is_file()
        except UnsafePathError:
            return False

    def read(self, path: str) -> Optional[str]:
        """读取文件文本，文件不存在时返回 None"""
        target = self.resolve(path)
        if not target.exists():
            return None
        return target.read_text(encoding="utf-8")

    def write(self, path: str, content: str) -> None:
        """
        原子写入：同目录临时文件 + os.replace，按需创建父目录。

        :param path: 相对工作区根目录的路径
        :param content: 完整的新文件内容
        :raises UnsafePathError: 路径逃出工作区
        :raises OSError: 写入失败
        """
        target = self.resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)

        fd, temp_name = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".tmp", dir=str(target.parent))
        temp_path = Path(temp_name)
        try:
            with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
                f.write(content)
            if target.exists():
                os.chmod(temp_path, target.stat().st_mode & 0o777)
            os.replace(temp_path, target)
        except Exception:
            temp_path.unlink(missing_ok=True)
            raise

    def snapshot(self, paths: Iterable[str]) -> Dict[str, Optional[str]]:
        """读取一组文件的当前内容；读取失败的文件记为 None"""
        result: Dict[str, Optional[str]] = {}
        for path in paths:
            try:
                result[path] = self.read(path)
            except (OSError, UnicodeDecodeError, UnsafePathError):
                result[path] = None
        return result
