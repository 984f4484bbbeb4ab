# editcoder/core/session.py
"""
编辑会话 (EditSession)：调用方驱动的编排对象。

start -> stream -> validate -> (accept 子集 | reject | retry | reuse_intent | fix_syntax_and_retry)

会话拥有一个协调器、选择集合和执行计划。只有 ExecutionOutcomeValidator
确认 changes_applied 之后，会话才会被视为完成。
"""

import asyncio
import time
from typing import Callable, Iterable, List, Optional, Set

from editflow.core.models import SessionRecord, SessionStatus, TimelineEvent, TimelineEventType
from editflow.storage.state import ISessionStore
from editflow.utils.id_generator import generate_session_id

from .config import EditStreamConfig
from .coordinator import ThrottledUpdateCoordinator
from .errors import SelectionError, SessionStateError, TransportError, UnsafePathError
from .expander import WorkspaceEditExpander
from .models import AgentState, AgentStateKind, ApplyReport, ExecutionPlan, ExpansionResult, IntentKind
from .outcome import ExecutionOutcomeValidator
from .parser import StructuralParser
from .prompt import PromptBuilder, narrow_to_syntax_fix
from .transport import Transport
from .workspace import Workspace
from ..utils.console import debug_log, error


def normalize_intent(instruction: str) -> str:
    return " ".join((instruction or "").split())


class EditSession:

    def __init__(
        self,
        instruction: str,
        workspace: Workspace,
        transport: Optional[Transport] = None,
        expander: Optional[WorkspaceEditExpander] = None,
        outcome_validator: Optional[ExecutionOutcomeValidator] = None,
        prompt_builder: Optional[PromptBuilder] = None,
        config: Optional[EditStreamConfig] = None,
        store: Optional[ISessionStore] = None,
        clock: Callable[[], float] = time.monotonic,
        plan_kind: Optional[IntentKind] = None,
        target_files: Optional[List[str]] = None,
        parent_id: Optional[str] = None,
    ):
        self.instruction = normalize_intent(instruction)
        if not self.instruction:
            raise SessionStateError("Instruction must not be empty")

        self.config = config or EditStreamConfig()
        self.workspace = workspace
        self.transport = transport
        self.expander = expander or WorkspaceEditExpander(self.config)
        self.outcome_validator = outcome_validator or ExecutionOutcomeValidator()
        self.prompt_builder = prompt_builder or PromptBuilder(workspace)
        self.store = store
        self._clock = clock

        self.coordinator = ThrottledUpdateCoordinator(
            parser=StructuralParser(
                is_known_path=workspace.exists,
                destructive_patterns=self.config.destructive_patterns,
            ),
            config=self.config,
            clock=clock,
        )

        self.session_id = generate_session_id()
        self.parent_id = parent_id
        self.status = SessionStatus.CREATED
        self.plan: Optional[ExecutionPlan] = None
        self.expansion: Optional[ExpansionResult] = None
        self.timeline: List[TimelineEvent] = []
        self.turns = 0
        self.prompt: Optional[str] = None
        self.last_report: Optional[ApplyReport] = None

        self._plan_kind = plan_kind
        self._target_files = list(target_files or [])
        self._selected: Set[str] = set()
        self._feeder: Optional[asyncio.Task] = None
        self._turn_done: Optional[asyncio.Event] = None
        self._started = False

    # ------------------------------
    # 只读视图
    # ------------------------------

    @property
    def state(self) -> AgentState:
        return self.coordinator.state

    @property
    def response_text(self) -> str:
        return self.coordinator.text

    @property
    def selected_ids(self) -> frozenset:
        return frozenset(self._selected)

    @property
    def is_complete(self) -> bool:
        return bool(self.last_report and self.last_report.is_complete)

    @property
    def in_flight(self) -> bool:
        """一轮从发起到 _after_turn 结束之间都算在途"""
        return self._turn_done is not None and not self._turn_done.is_set()

    def summary(self) -> str:
        """当前状态或应用结果的一行描述"""
        if self.last_report and self.last_report.outcome:
            outcome = self.last_report.outcome
            if outcome.changes_applied:
                return f"Applied changes to {outcome.files_modified} file(s)"
            return f"No changes applied: {outcome.no_op_explanation}"
        return self.state.describe()

    # ------------------------------
    # 时间线与持久化
    # ------------------------------

    def _record(self, event_type: TimelineEventType, message: str = "", **data) -> None:
        self.timeline.append(TimelineEvent(event_type=event_type, message=message, data=data))
        debug_log(f"[{self.session_id}] {event_type.value}: {message}")

    def to_record(self) -> SessionRecord:
        """转换成可持久化的 SessionRecord"""
        return SessionRecord(
            session_id=self.session_id,
            instruction=self.instruction,
            status=self.status,
            plan=self.plan.to_dict() if self.plan else None,
            timeline=list(self.timeline),
            state_summary=self.summary(),
            edits=[e.to_dict() for e in self.coordinator.files],
            commands=[c.to_dict() for c in self.coordinator.commands],
            outcome=self.last_report.outcome.to_dict() if self.last_report and self.last_report.outcome else None,
            parent_id=self.parent_id,
        )

    def _persist(self) -> None:
        if self.store is not None:
            self.store.save_session(self.session_id, self.to_record().to_dict())

    # ------------------------------
    # 轮次
    # ------------------------------

    async def start(self) -> AgentState:
        """
        发起会话：能确定性展开时不调用模型，否则跑一轮模型输出。

        :return: 本轮结束时的 AgentState
        :raises SessionStateError: 会话已开始，或需要模型却没有配置传输
        """
        if self._started:
            raise SessionStateError("Session already started")
        self._started = True
        self._record(TimelineEventType.SESSION_STARTED, self.instruction)

        kind = self._plan_kind
        target_files = list(self._target_files)
        if kind is not IntentKind.FIX_SYNTAX:
            self.expansion = self.expander.expand(self.instruction, self.workspace.root)
            kind = kind or self.expansion.intent.kind
            target_files = target_files or list(self.expansion.matched_files)
            if self.expansion.was_expanded:
                self.plan = ExecutionPlan(self.instruction, target_files, kind)
                self._record(
                    TimelineEventType.EXPANDED,
                    self.expansion.reason or "",
                    files=[e.path for e in self.expansion.deterministic_edits],
                )
                self.coordinator.complete_with(self.expansion.deterministic_edits)
                return self._after_turn()

        self.plan = ExecutionPlan(self.instruction, target_files, kind or IntentKind.COMPLEX)
        return await self._run_turn()

    async def _feed(self, prompt: str) -> None:
        try:
            async for fragment in self.transport.stream(prompt):
                if self.coordinator.is_cancelled:
                    return
                self.coordinator.on_fragment(fragment)
        except (TransportError, OSError, asyncio.TimeoutError) as e:
            self.coordinator.on_error(e)
            return
        except asyncio.CancelledError:
            self.coordinator.cancel()
            raise
        except Exception as e:
            self.coordinator.on_error(e)
            raise
        self.coordinator.on_complete()

    async def _run_turn(self) -> AgentState:
        if self.transport is None:
            raise SessionStateError("No model transport configured for this session")
        if self.in_flight:
            raise SessionStateError("A turn is already in flight")

        self.turns += 1
        self.prompt = self.prompt_builder.build(self.plan)
        self.coordinator.begin_turn()
        self.status = SessionStatus.STREAMING
        self._record(TimelineEventType.STREAMING_STARTED, f"Turn {self.turns}", turn=self.turns)

        self._turn_done = asyncio.Event()
        try:
            return await self._drive_turn()
        finally:
            self._turn_done.set()

    async def _drive_turn(self) -> AgentState:
        self._feeder = asyncio.ensure_future(self._feed(self.prompt))
        try:
            await self.coordinator.run_until_terminal()
        except asyncio.CancelledError:
            self.coordinator.cancel()
            self._after_turn()
            raise
        finally:
            if not self._feeder.done():
                self._feeder.cancel()
            # asyncio.wait 不会把任务异常抛到这里
            await asyncio.wait([self._feeder])

        failure = self._feeder.exception() if not self._feeder.cancelled() else None
        state = self._after_turn()
        if failure is not None:
            raise failure
        return state

    def _after_turn(self) -> AgentState:
        state = self.coordinator.state
        if state.kind is AgentStateKind.READY:
            self.status = SessionStatus.READY
            self._selected = {e.id for e in state.edits}
            self._record(
                TimelineEventType.PROPOSALS_READY,
                state.describe(),
                files=[e.path for e in state.edits],
                commands=len(state.commands),
            )
        elif state.kind is AgentStateKind.EMPTY:
            self.status = SessionStatus.EMPTY
            self._record(TimelineEventType.EMPTY, state.describe())
        elif state.kind is AgentStateKind.BLOCKED and self.coordinator.is_cancelled:
            self.status = SessionStatus.CANCELLED
            self._record(TimelineEventType.CANCELLED, state.reason or "")
        elif state.kind is AgentStateKind.BLOCKED:
            self.status = SessionStatus.BLOCKED
            self._record(TimelineEventType.BLOCKED, state.reason or "")

        if self.store is not None and self.prompt is not None:
            self.store.save_turn_artifacts(self.session_id, self.turns, self.prompt, self.coordinator.text)
        self._persist()
        return state

    def cancel(self, reason: str = "Turn cancelled by user") -> None:
        """
        取消在途的一轮。已解析的编辑保留，未完成的文件块保持 is_streaming=True。

        :param reason: 写入 blocked 状态和时间线的原因
        """
        self.coordinator.cancel(reason)
        if self._feeder is not None and not self._feeder.done():
            self._feeder.cancel()

    # ------------------------------
    # 选择
    # ------------------------------

    def _pending_ids(self) -> Set[str]:
        return {e.id for e in self.coordinator.files}

    def select(self, edit_ids: Iterable[str]) -> None:
        """
        把编辑加入选择集合。

        :raises SelectionError: 包含未知的编辑 id
        """
        edit_ids = set(edit_ids)
        unknown = edit_ids - self._pending_ids()
        if unknown:
            raise SelectionError(f"Unknown edit id(s): {', '.join(sorted(unknown))}")
        self._selected |= edit_ids

    def deselect(self, edit_ids: Iterable[str]) -> None:
        """从选择集合移除编辑，未知 id 直接忽略"""
        self._selected -= set(edit_ids)

    # ------------------------------
    # 应用 / 拒绝 / 重试
    # ------------------------------

    async def accept(self, selected_ids: Optional[Iterable[str]] = None) -> ApplyReport:
        """
        逐个原子写入选中的编辑，并用前后快照校验结果。

        :param selected_ids: 要应用的编辑 id，默认使用当前选择集合
        :return: ApplyReport，只有 outcome.changes_applied 为真时会话才算完成
        :raises SelectionError: 选择为空或含未知 id，此时不写任何文件
        :raises SessionStateError: 当前不是 ready 状态
        """
        ids = set(self._selected if selected_ids is None else selected_ids)
        if not ids:
            raise SelectionError("Select at least one edit to apply")

        state = self.coordinator.state
        if state.kind is not AgentStateKind.READY:
            raise SessionStateError(f"Nothing to accept while {state.kind.value}")
        unknown = ids - {e.id for e in state.edits}
        if unknown:
            raise SelectionError(f"Unknown edit id(s): {', '.join(sorted(unknown))}")

        edits = [e for e in state.edits if e.id in ids]
        paths = [e.path for e in edits]
        before = self.workspace.snapshot(paths)

        report = ApplyReport()
        for index, edit in enumerate(edits):
            if index and self.config.write_delay:
                await asyncio.sleep(self.config.write_delay)
            try:
                self.workspace.write(edit.path, edit.content)
            except (OSError, UnsafePathError) as e:
                report.failures[edit.path] = str(e)
                error(f"Failed to write {edit.path}: {e}")
                continue
            report.written.append(edit.path)

        after = self.workspace.snapshot(paths)
        report.outcome = self.outcome_validator.validate(edits, before, after, report.failures)
        self.last_report = report

        self.coordinator.discard(ids)
        self._selected -= ids

        outcome = report.outcome
        if report.failures:
            self._record(TimelineEventType.APPLY_FAILED, "Some files could not be written", failures=dict(report.failures))
        if outcome.changes_applied:
            self.status = SessionStatus.APPLIED
            self._record(
                TimelineEventType.ACCEPTED,
                f"Applied changes to {outcome.files_modified} file(s)",
                files=[p for p, changed in outcome.per_file_delta.items() if changed],
            )
        else:
            self.status = SessionStatus.NO_OP
            self._record(TimelineEventType.NO_OP, outcome.no_op_explanation or "", issues=list(outcome.issues))
        self._persist()
        return report

    async def reject(self) -> None:
        """
        丢弃所有待应用的编辑，不写任何文件。
        在途的一轮先被取消，等它收尾之后再重置协调器。
        """
        if self.in_flight:
            self.cancel("Turn rejected")
            await self._turn_done.wait()
        discarded = len(self.coordinator.files)
        self.coordinator.reset()
        self._selected.clear()
        self.status = SessionStatus.REJECTED
        self._record(TimelineEventType.REJECTED, f"Discarded {discarded} edit(s)", discarded=discarded)
        self._persist()

    async def retry(self) -> AgentState:
        """用同一个规范化意图重新发起一轮，之前的响应与编辑全部丢弃"""
        if self.plan is None:
            raise SessionStateError("No execution plan to retry")
        if self.in_flight:
            raise SessionStateError("A turn is already in flight")
        self.coordinator.reset()
        self._selected.clear()
        self.last_report = None
        self._record(TimelineEventType.RETRIED, self.plan.intent)
        return await self._run_turn()

    def _spawn(self, instruction: str, **overrides) -> "EditSession":
        return EditSession(
            instruction,
            workspace=self.workspace,
            transport=self.transport,
            expander=self.expander,
            outcome_validator=self.outcome_validator,
            prompt_builder=self.prompt_builder,
            config=self.config,
            store=self.store,
            clock=self._clock,
            parent_id=self.session_id,
            **overrides,
        )

    def reuse_intent(self, intent: Optional[str] = None) -> "EditSession":
        """新会话只携带意图字符串，不继承任何解析结果"""
        new_session = self._spawn(intent or self.instruction)
        self._record(TimelineEventType.INTENT_REUSED, new_session.instruction, new_session=new_session.session_id)
        self._persist()
        return new_session

    async def fix_syntax_and_retry(self, intent: Optional[str] = None) -> "EditSession":
        """受限重试：只修语法，范围限定在本会话涉及的文件"""
        scope = list(self.plan.target_files) if self.plan else []
        for edit in self.coordinator.files:
            if edit.path not in scope:
                scope.append(edit.path)
        new_session = self._spawn(
            narrow_to_syntax_fix(intent or self.instruction),
            plan_kind=IntentKind.FIX_SYNTAX,
            target_files=scope,
        )
        self._record(TimelineEventType.INTENT_REUSED, "fix syntax only", new_session=new_session.session_id)
        self._persist()
        await new_session.start()
        return new_session
