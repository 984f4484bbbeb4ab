# editcoder/core/coordinator.py
"""
节流更新协调器 (ThrottledUpdateCoordinator)

持有本轮的累积文本、解析出的实时编辑列表以及唯一的代理状态 (AgentState)。

- 片段到达只追加到缓冲区，从不在调用方线程上解析
- 解析按 tick 进行：每个 tick 间隔至多一次，文本没有变化就跳过
- 显示缓冲区按固定字符预算向累积文本靠拢，仅用于展示，从不参与解析
- 所有 tick 与状态修改都在同一把 RLock 下串行执行

状态转移表见 LEGAL_TRANSITIONS，其余转移一律抛出 InvalidTransitionError。
"""

import asyncio
import contextlib
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Set, Tuple

from .config import EditStreamConfig
from .errors import InvalidTransitionError, SessionStateError
from .models import (
    AgentState,
    AgentStateKind,
    CommandEdit,
    FileEdit,
    ParseResult,
    ValidationKind,
    ValidationOutcome,
)
from .parser import StructuralParser
from .transport import TransportFailure, classify_transport_error
from .validator import validate
from ..utils.console import debug_log, warning

S = AgentStateKind

LEGAL_TRANSITIONS = {
    S.IDLE: {S.STREAMING},
    S.STREAMING: {S.STREAMING, S.VALIDATING, S.BLOCKED, S.IDLE},
    S.VALIDATING: {S.BLOCKED, S.EMPTY, S.READY, S.IDLE},
    S.READY: {S.IDLE},
    S.BLOCKED: {S.IDLE},
    S.EMPTY: {S.IDLE},
}

ParserFn = Callable[..., ParseResult]
ValidatorFn = Callable[[str], ValidationOutcome]


class CoordinatorEventKind(Enum):
    STATE_CHANGED = "state_changed"
    EDITS_CHANGED = "edits_changed"


@dataclass(frozen=True)
class CoordinatorEvent:
    kind: CoordinatorEventKind
    state: AgentState
    files: Tuple[FileEdit, ...]
    commands: Tuple[CommandEdit, ...]


Listener = Callable[[CoordinatorEvent], None]


class ThrottledUpdateCoordinator:

    def __init__(
        self,
        parser: Optional[ParserFn] = None,
        validator: Optional[ValidatorFn] = None,
        config: Optional[EditStreamConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or EditStreamConfig()
        self._parser = parser or StructuralParser(destructive_patterns=self.config.destructive_patterns)
        self._validator = validator or (lambda text: validate(text, strict=self.config.strict_format))
        self._clock = clock

        self._lock = threading.RLock()
        self._listeners: List[Listener] = []
        self._in_tick = False

        self.parse_count = 0
        self.tick_count = 0
        self._clear_turn()
        self._state = AgentState.idle()

    # ------------------------------
    # 只读快照
    # ------------------------------

    @property
    def state(self) -> AgentState:
        return self._state

    @property
    def files(self) -> Tuple[FileEdit, ...]:
        with self._lock:
            return tuple(self._files.values())

    @property
    def commands(self) -> Tuple[CommandEdit, ...]:
        return self._commands

    @property
    def text(self) -> str:
        with self._lock:
            return self._joined()

    @property
    def displayed_text(self) -> str:
        with self._lock:
            return self._joined()[:self._displayed_length]

    @property
    def validation(self) -> Optional[ValidationOutcome]:
        return self._validation

    @property
    def last_failure(self) -> Optional[TransportFailure]:
        return self._failure

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled

    # ------------------------------
    # 订阅
    # ------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """注册事件监听器，返回取消订阅的函数"""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe():
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, kind: CoordinatorEventKind) -> None:
        event = CoordinatorEvent(kind, self._state, tuple(self._files.values()), self._commands)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                warning(f"State listener {listener!r} failed: {e}")

    # ------------------------------
    # 内部状态
    # ------------------------------

    def _clear_turn(self) -> None:
        self._fragments: List[str] = []
        self._length = 0
        self._parsed_length = -1
        self._last_parse_at: Optional[float] = None
        self._displayed_length = 0
        self._files: Dict[str, FileEdit] = {}
        self._commands: Tuple[CommandEdit, ...] = ()
        self._discarded: Set[str] = set()
        self._completed = False
        self._cancelled = False
        self._validation: Optional[ValidationOutcome] = None
        self._failure: Optional[TransportFailure] = None

    def _joined(self) -> str:
        if len(self._fragments) > 1:
            self._fragments = ["".join(self._fragments)]
        return self._fragments[0] if self._fragments else ""

    def _transition(self, new_state: AgentState) -> None:
        current = self._state.kind
        if new_state.kind not in LEGAL_TRANSITIONS[current]:
            raise InvalidTransitionError(current, new_state.kind)
        debug_log(f"Agent state {current.value} -> {new_state.kind.value}")
        self._state = new_state
        self._emit(CoordinatorEventKind.STATE_CHANGED)

    def _parse(self, final: bool) -> None:
        result = self._parser(self._joined(), final=final)
        self.parse_count += 1
        self._parsed_length = self._length

        changed = False
        for edit in result.files:
            if edit.id in self._discarded:
                continue
            previous = self._files.get(edit.id)
            # 已完成的文件不会退回流式状态
            if previous is not None and not previous.is_streaming and edit.is_streaming:
                continue
            if previous != edit:
                self._files[edit.id] = edit
                changed = True
        if len(result.commands) >= len(self._commands) and result.commands != self._commands:
            self._commands = result.commands
            changed = True
        if changed:
            self._emit(CoordinatorEventKind.EDITS_CHANGED)

    def _resolve(self) -> None:
        """validating 状态下的强制解析与校验，总会落到一个终止状态"""
        self._parse(final=True)
        outcome = self._validator(self._joined())
        self._validation = outcome

        if outcome.kind is ValidationKind.SILENT_FAILURE:
            self._transition(AgentState.blocked("The model returned an empty response"))
        elif outcome.kind is ValidationKind.INVALID_FORMAT:
            self._transition(AgentState.blocked(outcome.reason or "Response is not in the edit format"))
        elif outcome.kind is ValidationKind.NO_OP:
            self._transition(AgentState.empty("The model reported that no changes are needed"))
        elif not self._files and not self._commands:
            self._transition(AgentState.empty("No applicable file edits or commands were found"))
        else:
            self._transition(AgentState.ready(self._files.values(), self._commands))

    # ------------------------------
    # 传输事件
    # ------------------------------

    def begin_turn(self) -> None:
        """
        开始新的一轮：终止状态先回到 idle，缓冲区与编辑清空。

        :raises SessionStateError: 一轮仍在进行中
        """
        with self._lock:
            if self._state.is_terminal:
                self._transition(AgentState.idle())
            elif self._state.kind is not S.IDLE:
                raise SessionStateError(f"Cannot begin a turn while {self._state.kind.value}")
            self._clear_turn()

    def reset(self) -> None:
        """回到 idle 并丢弃本轮的全部文本、编辑和取消标记"""
        with self._lock:
            if self._state.kind is not S.IDLE:
                self._transition(AgentState.idle())
            self._clear_turn()
            self._emit(CoordinatorEventKind.EDITS_CHANGED)

    def on_fragment(self, fragment: str) -> None:
        """
        追加一个传输片段。只追加不解析，解析由 parse_tick 按节流间隔完成。

        :param fragment: 模型输出的增量文本，空串被忽略
        """
        with self._lock:
            if self._completed or self._cancelled or self._state.is_terminal:
                debug_log("Ignoring fragment after the turn ended")
                return
            if not fragment:
                return
            if self._state.kind is S.IDLE:
                self._transition(AgentState.streaming())
            self._fragments.append(fragment)
            self._length += len(fragment)

    def on_complete(self) -> None:
        """流正常结束，进入 validating，由下一次 parse_tick 做最终解析与校验"""
        with self._lock:
            if self._completed or self._cancelled or self._state.is_terminal:
                return
            if self._state.kind is S.IDLE:
                self._transition(AgentState.streaming())
            self._completed = True
            self._transition(AgentState.validating())

    def on_error(self, exc: BaseException) -> TransportFailure:
        """
        传输失败：保留已解析的编辑，进入 blocked。

        :param exc: 传输层抛出的异常
        :return: 分类后的 TransportFailure
        """
        with self._lock:
            failure = classify_transport_error(exc)
            if self._cancelled or self._state.is_terminal:
                return failure
            self._failure = failure
            self._completed = True
            if self._state.kind is S.IDLE:
                self._transition(AgentState.streaming())
            if self._length:
                self._parse(final=False)
            self._transition(AgentState.blocked(failure.message))
            return failure

    def cancel(self, reason: str = "Turn cancelled") -> None:
        """
        停止接收片段，保留缓冲区和已解析的编辑供检查。
        未完成的文件块保持 is_streaming=True。
        """
        with self._lock:
            if self._cancelled or self._state.is_terminal:
                return
            self._cancelled = True
            if self._state.kind is S.IDLE:
                return
            if self._length and self._parsed_length != self._length:
                self._parse(final=False)
            self._transition(AgentState.blocked(reason))

    def complete_with(self, edits: Iterable[FileEdit], commands: Iterable[CommandEdit] = ()) -> None:
        """确定性展开的编辑走同一个状态机，但不经过文本解析"""
        with self._lock:
            self.begin_turn()
            edits = list(edits)
            commands = tuple(commands)
            self._transition(AgentState.streaming())
            self._files = {e.id: e for e in edits}
            self._commands = commands
            self._completed = True
            self._emit(CoordinatorEventKind.EDITS_CHANGED)
            self._transition(AgentState.validating())
            self._validation = ValidationOutcome.valid()
            if edits or commands:
                self._transition(AgentState.ready(edits, commands))
            else:
                self._transition(AgentState.empty("No deterministic edits were produced"))

    def discard(self, edit_ids: Iterable[str]) -> None:
        """从待应用集合中移除给定 id，ready 状态下同步刷新编辑列表"""
        with self._lock:
            removed = False
            for edit_id in edit_ids:
                self._discarded.add(edit_id)
                if self._files.pop(edit_id, None) is not None:
                    removed = True
            if not removed:
                return
            if self._state.kind is S.READY:
                # 同一 ready 状态内刷新列表，不算状态转移
                self._state = AgentState.ready(self._files.values(), self._commands)
            self._emit(CoordinatorEventKind.EDITS_CHANGED)

    # ------------------------------
    # Ticks
    # ------------------------------

    def parse_tick(self) -> bool:
        """返回本次 tick 是否执行了解析"""
        with self._lock:
            if self._in_tick:
                return False
            self._in_tick = True
            try:
                self.tick_count += 1
                if self._state.kind is S.VALIDATING:
                    self._resolve()
                    return True
                if self._state.kind is not S.STREAMING:
                    return False

                now = self._clock()
                if self._last_parse_at is not None and now - self._last_parse_at < self.config.tick_interval:
                    return False
                if self._length == self._parsed_length:
                    return False
                self._parse(final=False)
                self._last_parse_at = now
                return True
            finally:
                self._in_tick = False

    def display_tick(self) -> bool:
        """按固定字符预算推进展示文本，返回是否有推进"""
        with self._lock:
            if self._displayed_length >= self._length:
                return False
            self._displayed_length = min(self._length, self._displayed_length + self.config.display_chars_per_tick)
            return True

    async def _display_loop(self) -> None:
        while True:
            self.display_tick()
            await asyncio.sleep(self.config.display_interval)

    async def run_until_terminal(self) -> AgentState:
        """
        在当前事件循环上驱动两个 tick，直到进入终止状态。
        取消发生在 idle 时直接返回。
        """
        display_task = asyncio.ensure_future(self._display_loop())
        try:
            while True:
                self.parse_tick()
                if self._state.is_terminal or (self._cancelled and self._state.kind is S.IDLE):
                    break
                await asyncio.sleep(self.config.tick_interval)
        finally:
            display_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await display_task
            with self._lock:
                self._displayed_length = self._length
        return self._state
