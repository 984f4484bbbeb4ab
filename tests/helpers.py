# tests/helpers.py
import asyncio
from typing import AsyncIterator, List, Optional

from editcoder.core.transport import Transport


class FakeClock:
    """可手动推进的单调时钟，单位秒"""

    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def build_response(*files, commands=None) -> str:
    """files: (path, content) 元组；content 不含结尾换行"""
    parts = []
    for path, content in files:
        parts.append(f"BEGIN FILE {path}\n{content}\nEND FILE\n")
    if commands:
        parts.append("```bash\n" + "\n".join(commands) + "\n```\n")
    return "".join(parts)


class ScriptedTransport(Transport):
    """按给定片段输出，然后可选地抛出异常或挂起直到被取消"""

    def __init__(self, fragments: List[str], error: Optional[BaseException] = None, hang: bool = False):
        self.fragments = list(fragments)
        self.error = error
        self.hang = hang
        self.prompts: List[str] = []

    async def stream(self, prompt: str) -> AsyncIterator[str]:
        self.prompts.append(prompt)
        for fragment in self.fragments:
            await asyncio.sleep(0)
            yield fragment
        if self.error is not None:
            raise self.error
        if self.hang:
            await asyncio.Event().wait()
