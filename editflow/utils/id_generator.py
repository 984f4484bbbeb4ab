# editflow/utils/id_generator.py
import uuid
from datetime import datetime


def generate_session_id() -> str:
    """会话 ID：日期前缀便于按时间排序，后缀保证唯一"""
    return f"{datetime.now().strftime('%Y%m%d-%H%M%S')}-{uuid.uuid4().hex[:6]}"