# editflow/storage/file_lock.py
"""
文件锁，用于跨进程串行化对同一会话记录的读写。

- Unix 使用 fcntl.flock，Windows 使用 msvcrt.locking
- 支持 with 语句，退出时总会释放
"""

import sys
from pathlib import Path

if sys.platform == "win32":
    import msvcrt
else:
    import fcntl

from ..utils.checksum import short_checksum


class LockError(RuntimeError):
    pass


class FileLock:
    """阻塞式独占文件锁。"""

    def __init__(self, lock_file_path: str):
        self.lock_file_path = Path(lock_file_path)
        self._handle = None

    @classmethod
    def for_key(cls, locks_dir: Path, key: str) -> "FileLock":
        """按任意键（例如会话 id 或索引名）派生锁文件，避免键中的特殊字符进入文件名"""
        return cls(str(Path(locks_dir) / f"{short_checksum(key)}.lock"))

    def acquire(self) -> None:
        """获取独占锁，阻塞直到成功"""
        self.lock_file_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            self._handle = open(self.lock_file_path, "a+")
            if sys.platform == "win32":
                msvcrt.locking(self._handle.fileno(), msvcrt.LK_LOCK, 1)
            else:
                fcntl.flock(self._handle.fileno(), fcntl.LOCK_EX)
        except OSError as e:
            if self._handle:
                self._handle.close()
                self._handle = None
            raise LockError(f"Cannot acquire lock {self.lock_file_path}: {e}") from e

    def release(self) -> None:
        """释放锁并关闭锁文件句柄，未持有时什么也不做"""
        if not self._handle:
            return
        try:
            if sys.platform == "win32":
                msvcrt.locking(self._handle.fileno(), msvcrt.LK_UNLCK, 1)
            else:
                fcntl.flock(self._handle.fileno(), fcntl.LOCK_UN)
        finally:
            self._handle.close()
            self._handle = None

    @property
    def is_locked(self) -> bool:
        return self._handle is not None

    def __enter__(self):
        self.acquire()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release()
