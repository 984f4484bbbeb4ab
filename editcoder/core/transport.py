# editcoder/core/transport.py
"""
模型传输协作者。

传输层只承诺一件事：按顺序产出文本片段，以正常结束或异常结束。
真正的网络客户端不在本项目范围内；这里提供回放文件与外部命令两种实现，
以及集中式的传输错误分类（协调器和展示层只使用分类结果）。
"""

import asyncio
import codecs
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import AsyncIterator, List, Optional, Union

from .errors import TransportError
from ..utils.console import debug_log


class TransportFailureKind(Enum):
    CLIENT = "client"
    AUTH = "auth"
    RATE_LIMIT = "rate_limit"
    SERVER = "server"
    NETWORK = "network"


@dataclass(frozen=True)
class TransportFailure:
    kind: TransportFailureKind
    message: str
    status_code: Optional[int] = None
    retryable: bool = False  # 仅供展示；核心从不自动重试


def classify_transport_error(exc: BaseException) -> TransportFailure:
    """把任意传输异常归类成可读的 TransportFailure，并标记是否值得重试"""
    status = getattr(exc, "status_code", None)
    detail = str(exc).strip()

    if status is None:
        if isinstance(exc, (asyncio.TimeoutError, TimeoutError)):
            return TransportFailure(TransportFailureKind.NETWORK, "Request to AI service timed out", None, True)
        message = "Failed to connect to AI service"
        if detail:
            message = f"{message}: {detail}"
        return TransportFailure(TransportFailureKind.NETWORK, message, None, True)

    if status in (401, 403):
        return TransportFailure(TransportFailureKind.AUTH, "API key is invalid or missing", status, False)
    if status in (402, 429):
        return TransportFailure(
            TransportFailureKind.RATE_LIMIT,
            "API rate limit exceeded. Wait a moment before retrying",
            status,
            True,
        )
    if 500 <= status <= 599:
        return TransportFailure(
            TransportFailureKind.SERVER,
            f"AI service is temporarily unavailable (HTTP {status})",
            status,
            True,
        )
    if 400 <= status <= 499:
        message = f"Request was rejected by the AI service (HTTP {status})"
        if detail:
            message = f"{message}: {detail}"
        return TransportFailure(TransportFailureKind.CLIENT, message, status, False)
    return TransportFailure(TransportFailureKind.NETWORK, f"Unexpected response from AI service (HTTP {status})", status, False)


class Transport(ABC):
    """一次 stream() 调用对应一轮 (turn)"""

    @abstractmethod
    def stream(self, prompt: str) -> AsyncIterator[str]:
        raise NotImplementedError


class ReplayTransport(Transport):
    """
    回放一段已经完成的响应文本，按固定大小切片。
    用于离线运行、CLI 的 --response-file 以及测试。
    """

    def __init__(self, responses: Union[str, List[str]], chunk_size: int = 16, delay: float = 0.0):
        self.responses = [responses] if isinstance(responses, str) else list(responses)
        self.chunk_size = max(1, chunk_size)
        self.delay = delay
        self.prompts: List[str] = []

    @classmethod
    def from_file(cls, path: Union[str, Path], **kwargs) -> "ReplayTransport":
        return cls(Path(path).read_text(encoding="utf-8"), **kwargs)

    @property
    def call_count(self) -> int:
        return len(self.prompts)

    async def stream(self, prompt: str) -> AsyncIterator[str]:
        if not self.responses:
            raise TransportError("No recorded response left to replay")
        self.prompts.append(prompt)
        # 多段响应按顺序消费，最后一段重复使用
        text = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        for start in range(0, len(text), self.chunk_size):
            if self.delay:
                await asyncio.sleep(self.delay)
            else:
                await asyncio.sleep(0)
            yield text[start:start + self.chunk_size]


class SubprocessTransport(Transport):
    """
    把提示词写入外部命令的 stdin，逐块读取 stdout 作为片段。
    命令以非零状态退出时抛出 TransportError，stderr 作为错误信息。
    """

    def __init__(self, command: str, read_size: int = 256, timeout: Optional[float] = None):
        self.command = command
        self.read_size = read_size
        self.timeout = timeout

    async def stream(self, prompt: str) -> AsyncIterator[str]:
        debug_log(f"Spawning model command: {self.command}")
        try:
            process = await asyncio.create_subprocess_shell(
                self.command,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise TransportError(f"Cannot start model command: {e}") from e

        stderr_task = None
        try:
            process.stdin.write(prompt.encode("utf-8"))
            await process.stdin.drain()
            process.stdin.close()
            stderr_task = asyncio.ensure_future(process.stderr.read())

            decoder = _IncrementalUtf8()
            while True:
                if self.timeout:
                    chunk = await asyncio.wait_for(process.stdout.read(self.read_size), self.timeout)
                else:
                    chunk = await process.stdout.read(self.read_size)
                if not chunk:
                    break
                text = decoder.feed(chunk)
                if text:
                    yield text
            tail = decoder.flush()
            if tail:
                yield tail

            returncode = await process.wait()
            stderr = (await stderr_task).decode("utf-8", errors="replace").strip()
            if returncode != 0:
                raise TransportError(
                    f"Model command exited with status {returncode}: {stderr or 'no output'}",
                    status_code=_status_from_stderr(stderr),
                )
        finally:
            if process.returncode is None:
                process.kill()
                await process.wait()
            if stderr_task is not None and not stderr_task.done():
                stderr_task.cancel()


class _IncrementalUtf8:
    """多字节字符可能被切在两个块之间"""

    def __init__(self):
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

    def feed(self, data: bytes) -> str:
        return self._decoder.decode(data)

    def flush(self) -> str:
        return self._decoder.decode(b"", final=True)


def _status_from_stderr(stderr: str) -> Optional[int]:
    """约定：外部命令可以在 stderr 中输出 'HTTP <code>' 以报告状态码"""
    match = re.search(r"\bHTTP[ /]?(?:\d\.\d\s+)?(\d{3})\b", stderr)
    return int(match.group(1)) if match else None
