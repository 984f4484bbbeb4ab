# editflow/storage/file_session_store.py
"""
基于文件系统的会话历史存储 (FileSessionStore)

目录布局::

    <base_dir>/sessions/<session_id>.json          完整会话记录
    <base_dir>/sessions/<session_id>/turns/NNN_*    每轮的提示词与原始响应
    <base_dir>/.indexes/session_index.json         会话摘要索引
    <base_dir>/.locks/                             文件锁
"""

import json
from datetime import datetime
from pathlib import Path
from typing import Dict, Any, Optional, List

from .file_lock import FileLock
from .state import ISessionStore
from ..utils.checksum import calculate_checksum

INDEX_FILE = "session_index.json"


def _write_atomic(target: Path, text: str) -> None:
    temp_file = target.with_name(target.name + ".tmp")
    try:
        temp_file.write_text(text, encoding="utf-8")
        temp_file.replace(target)
    except Exception:
        temp_file.unlink(missing_ok=True)
        raise


class FileSessionStore(ISessionStore):
    def __init__(self, base_dir: str = ".editstream"):
        self.base_dir = Path(base_dir).resolve()
        self.sessions_dir = self.base_dir / "sessions"
        self.locks_dir = self.base_dir / ".locks"
        self.indexes_dir = self.base_dir / ".indexes"

        for dir_path in [self.sessions_dir, self.locks_dir, self.indexes_dir]:
            dir_path.mkdir(parents=True, exist_ok=True)

    # --- 索引 ---

    def _load_index(self) -> Dict[str, Dict[str, Any]]:
        index_file = self.indexes_dir / INDEX_FILE
        if not index_file.exists():
            return {}
        try:
            data = json.loads(index_file.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            # 索引可由会话文件重建
            return self._rebuild_index()
        return data if isinstance(data, dict) else {}

    def _rebuild_index(self) -> Dict[str, Dict[str, Any]]:
        index = {}
        for session_file in self.sessions_dir.glob("*.json"):
            try:
                data = json.loads(session_file.read_text(encoding="utf-8"))
            except (OSError, json.JSONDecodeError):
                continue
            index[session_file.stem] = self._summary(data)
        return index

    @staticmethod
    def _summary(record_data: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "session_id": record_data.get("session_id"),
            "status": record_data.get("status"),
            "instruction": record_data.get("instruction", ""),
            "updated_at": record_data.get("updated_at"),
        }

    # --- ISessionStore ---

    def save_session(self, session_id: str, record_data: Dict[str, Any]) -> None:
        """
        原子保存会话记录并更新摘要索引。

        :param session_id: 会话 ID
        :param record_data: SessionRecord.to_dict() 的结果
        """
        record_data = dict(record_data)
        record_data["updated_at"] = datetime.now().timestamp()

        with FileLock.for_key(self.locks_dir, session_id):
            _write_atomic(
                self.sessions_dir / f"{session_id}.json",
                json.dumps(record_data, indent=2, ensure_ascii=False),
            )

        with FileLock.for_key(self.locks_dir, INDEX_FILE):
            index = self._load_index()
            index[session_id] = self._summary(record_data)
            _write_atomic(self.indexes_dir / INDEX_FILE, json.dumps(index, indent=2, ensure_ascii=False))

    def load_session(self, session_id: str) -> Optional[Dict[str, Any]]:
        """读取会话记录，不存在时返回 None"""
        session_file = self.sessions_dir / f"{session_id}.json"
        with FileLock.for_key(self.locks_dir, session_id):
            if not session_file.exists():
                return None
            return json.loads(session_file.read_text(encoding="utf-8"))

    def list_sessions(self) -> List[Dict[str, Any]]:
        """按更新时间倒序返回会话摘要，索引损坏时重建"""
        index = self._load_index()
        return sorted(index.values(), key=lambda s: s.get("updated_at") or 0, reverse=True)

    def save_turn_artifacts(
        self,
        session_id: str,
        turn_number: int,
        prompt_content: str,
        response_content: str,
    ) -> Dict[str, str]:
        """保存一轮的提示词和原始响应，返回相对路径与校验和"""
        turns_dir = self.sessions_dir / session_id / "turns"
        turns_dir.mkdir(parents=True, exist_ok=True)

        prefix = f"{turn_number:03d}"
        prompt_file = turns_dir / f"{prefix}_prompt.md"
        response_file = turns_dir / f"{prefix}_response.md"

        with FileLock.for_key(self.locks_dir, session_id):
            _write_atomic(prompt_file, prompt_content)
            _write_atomic(response_file, response_content)

        return {
            "prompt_path": str(prompt_file.relative_to(self.base_dir)),
            "response_path": str(response_file.relative_to(self.base_dir)),
            "prompt_checksum": calculate_checksum(prompt_content),
            "response_checksum": calculate_checksum(response_content),
        }

    def load_turn_response(self, session_id: str, turn_number: int) -> Optional[str]:
        """读取某一轮保存的原始响应，不存在时返回 None"""
        response_file = self.sessions_dir / session_id / "turns" / f"{turn_number:03d}_response.md"
        if not response_file.exists():
            return None
        return response_file.read_text(encoding="utf-8")
