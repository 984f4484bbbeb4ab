# editflow/storage/state.py
"""
editflow 存储接口 - 会话历史存储 (ISessionStore)
定义了编辑会话持久化所需的标准接口。
"""

from abc import ABC, abstractmethod
from typing import List, Dict, Any, Optional


class ISessionStore(ABC):
    @abstractmethod
    def save_session(self, session_id: str, record_data: Dict[str, Any]) -> None:
        pass

    @abstractmethod
    def load_session(self, session_id: str) -> Optional[Dict[str, Any]]:
        pass

    @abstractmethod
    def list_sessions(self) -> List[Dict[str, Any]]:
        """按更新时间倒序返回会话摘要（id、状态、指令）。"""
        pass

    @abstractmethod
    def save_turn_artifacts(
        self,
        session_id: str,
        turn_number: int,
        prompt_content: str,
        response_content: str,
    ) -> Dict[str, str]:
        raise NotImplementedError
