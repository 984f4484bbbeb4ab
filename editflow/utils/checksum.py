# editflow/utils/checksum.py
import hashlib
from typing import Union


def calculate_checksum(content: Union[str, bytes]) -> str:
    """计算内容的 SHA256 校验和"""
    if isinstance(content, str):
        content = content.encode("utf-8")
    return hashlib.sha256(content).hexdigest()


def short_checksum(content: Union[str, bytes], length: int = 12) -> str:
    """截断的校验和，用作稳定的短标识（例如按路径派生的编辑 id）"""
    return calculate_checksum(content)[:length]
