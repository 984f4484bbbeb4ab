# tests/test_coordinator.py
import asyncio
import unittest
from unittest.mock import patch

import pytest

from editcoder.core.config import EditStreamConfig
from editcoder.core.coordinator import (
    LEGAL_TRANSITIONS,
    CoordinatorEventKind,
    ThrottledUpdateCoordinator,
)
from editcoder.core.errors import InvalidTransitionError, SessionStateError, TransportError
from editcoder.core.models import AgentState, AgentStateKind, FileEdit
from editcoder.core.parser import edit_id_for
from editcoder.core.transport import TransportFailureKind

from .helpers import FakeClock, build_response

S = AgentStateKind


def _feed(coordinator, text, clock=None, step=0.001):
    for ch in text:
        coordinator.on_fragment(ch)
        if clock is not None:
            clock.advance(step)
        coordinator.parse_tick()


class TestStateMachine(unittest.TestCase):

    def setUp(self):
        self.clock = FakeClock()
        self.coordinator = ThrottledUpdateCoordinator(clock=self.clock)

    def _finish(self, text):
        self.coordinator.on_fragment(text)
        self.coordinator.on_complete()
        self.assertIs(self.coordinator.state.kind, S.VALIDATING)
        self.assertTrue(self.coordinator.parse_tick())
        return self.coordinator.state

    def test_valid_response_is_ready(self):
        state = self._finish(build_response(("a.py", "x = 1"), commands=["pytest"]))
        self.assertIs(state.kind, S.READY)
        self.assertEqual([e.path for e in state.edits], ["a.py"])
        self.assertEqual(len(state.commands), 1)

    def test_empty_response_is_blocked(self):
        self.coordinator.on_complete()
        self.coordinator.parse_tick()
        self.assertIs(self.coordinator.state.kind, S.BLOCKED)
        self.assertEqual(self.coordinator.state.reason, "The model returned an empty response")

    def test_prose_response_is_blocked(self):
        state = self._finish("Sure, here's the fix:\n...")
        self.assertIs(state.kind, S.BLOCKED)
        self.assertIn("no executable file edits", state.reason)

    def test_no_op_response_is_empty(self):
        state = self._finish('{"noop": true}')
        self.assertIs(state.kind, S.EMPTY)
        self.assertEqual(state.reason, "The model reported that no changes are needed")

    def test_fragments_after_terminal_are_ignored(self):
        self._finish(build_response(("a.py", "1")))
        self.coordinator.on_fragment("more")
        self.assertNotIn("more", self.coordinator.text)

    def test_begin_turn_mid_stream_raises(self):
        self.coordinator.on_fragment("BEGIN FILE a.py\n")
        with self.assertRaises(SessionStateError):
            self.coordinator.begin_turn()

    def test_begin_turn_after_terminal_resets(self):
        self._finish(build_response(("a.py", "1")))
        self.coordinator.begin_turn()
        self.assertIs(self.coordinator.state.kind, S.IDLE)
        self.assertEqual(self.coordinator.files, ())
        self.assertEqual(self.coordinator.text, "")

    def test_illegal_transition(self):
        with self.assertRaises(InvalidTransitionError):
            self.coordinator._transition(AgentState.ready([]))
        self.assertNotIn(S.STREAMING, LEGAL_TRANSITIONS[S.READY])

    def test_reset_returns_to_idle(self):
        self._finish(build_response(("a.py", "1")))
        self.coordinator.reset()
        self.assertIs(self.coordinator.state.kind, S.IDLE)
        self.assertEqual(self.coordinator.files, ())


class TestThrottling(unittest.TestCase):

    def test_parse_count_is_bounded_by_tick_interval(self):
        clock = FakeClock()
        coordinator = ThrottledUpdateCoordinator(clock=clock)
        body = "\n".join(f"line {i} of a fairly long generated file" for i in range(60))
        text = build_response(*[(f"src/mod{i}.py", body) for i in range(5)])
        while len(text) < 10000:
            text += text
        text = text[:10000]

        _feed(coordinator, text, clock)
        elapsed_ms = len(text)
        self.assertLessEqual(coordinator.parse_count, elapsed_ms // 100 + 1)
        self.assertGreater(coordinator.parse_count, 0)
        self.assertEqual(coordinator.tick_count, len(text))

    def test_unchanged_text_is_not_reparsed(self):
        clock = FakeClock()
        coordinator = ThrottledUpdateCoordinator(clock=clock)
        coordinator.on_fragment("BEGIN FILE a.py\nx\n")
        self.assertTrue(coordinator.parse_tick())
        clock.advance(1)
        self.assertFalse(coordinator.parse_tick())
        self.assertEqual(coordinator.parse_count, 1)

    def test_streaming_edit_appears_before_completion(self):
        clock = FakeClock()
        coordinator = ThrottledUpdateCoordinator(clock=clock)
        coordinator.on_fragment("BEGIN FILE new.txt\nhel")
        coordinator.parse_tick()
        self.assertEqual(len(coordinator.files), 1)
        self.assertTrue(coordinator.files[0].is_streaming)
        self.assertIs(coordinator.state.kind, S.STREAMING)


class TestCancelAndError(unittest.TestCase):

    def _partial_text(self):
        full = build_response(*[(f"f{i}.txt", f"content {i}\nmore {i}") for i in range(5)])
        cut = full.index("content 3") + len("content 3")
        return full[:cut]

    def test_cancel_keeps_completed_and_partial_edits(self):
        coordinator = ThrottledUpdateCoordinator(clock=FakeClock())
        _feed(coordinator, self._partial_text())
        coordinator.cancel()

        self.assertIs(coordinator.state.kind, S.BLOCKED)
        self.assertEqual(coordinator.state.reason, "Turn cancelled")
        self.assertTrue(coordinator.is_cancelled)
        files = coordinator.files
        self.assertEqual([f.path for f in files], ["f0.txt", "f1.txt", "f2.txt", "f3.txt"])
        self.assertEqual([f.is_streaming for f in files], [False, False, False, True])
        self.assertEqual(files[0].content, "content 0\nmore 0\n")

        coordinator.on_fragment("late")
        self.assertNotIn("late", coordinator.text)

    def test_cancel_while_idle_does_not_transition(self):
        coordinator = ThrottledUpdateCoordinator()
        coordinator.cancel()
        self.assertIs(coordinator.state.kind, S.IDLE)
        self.assertTrue(coordinator.is_cancelled)

    def test_transport_error_blocks_with_message(self):
        coordinator = ThrottledUpdateCoordinator(clock=FakeClock())
        coordinator.on_fragment("BEGIN FILE a.txt\nhalf")
        failure = coordinator.on_error(TransportError("upstream", status_code=503))

        self.assertIs(failure.kind, TransportFailureKind.SERVER)
        self.assertTrue(failure.retryable)
        self.assertIs(coordinator.state.kind, S.BLOCKED)
        self.assertIn("temporarily unavailable", coordinator.state.reason)
        self.assertIs(coordinator.last_failure, failure)
        self.assertTrue(coordinator.files[0].is_streaming)

    def test_error_before_any_fragment(self):
        coordinator = ThrottledUpdateCoordinator()
        coordinator.on_error(TransportError("denied", status_code=401))
        self.assertIs(coordinator.state.kind, S.BLOCKED)
        self.assertEqual(coordinator.state.reason, "API key is invalid or missing")


class TestEditsAndListeners(unittest.TestCase):

    def _edit(self, path, content="x\n"):
        return FileEdit(id=edit_id_for(path), path=path, content=content)

    def test_complete_with_skips_parsing(self):
        coordinator = ThrottledUpdateCoordinator()
        coordinator.complete_with([self._edit("a.py"), self._edit("b.py")])
        self.assertIs(coordinator.state.kind, S.READY)
        self.assertEqual(len(coordinator.state.edits), 2)
        self.assertEqual(coordinator.parse_count, 0)

    def test_complete_with_nothing_is_empty(self):
        coordinator = ThrottledUpdateCoordinator()
        coordinator.complete_with([])
        self.assertIs(coordinator.state.kind, S.EMPTY)

    def test_discard_refreshes_ready_state(self):
        coordinator = ThrottledUpdateCoordinator()
        a, b = self._edit("a.py"), self._edit("b.py")
        coordinator.complete_with([a, b])
        events = []
        coordinator.subscribe(events.append)

        coordinator.discard([a.id])
        self.assertIs(coordinator.state.kind, S.READY)
        self.assertEqual([e.path for e in coordinator.state.edits], ["b.py"])
        self.assertEqual([e.kind for e in events], [CoordinatorEventKind.EDITS_CHANGED])

    def test_listener_receives_state_changes_and_can_unsubscribe(self):
        coordinator = ThrottledUpdateCoordinator()
        seen = []
        unsubscribe = coordinator.subscribe(lambda event: seen.append(event.state.kind))
        coordinator.complete_with([self._edit("a.py")])
        self.assertEqual(seen[-1], S.READY)
        self.assertIn(S.VALIDATING, seen)

        unsubscribe()
        count = len(seen)
        coordinator.reset()
        self.assertEqual(len(seen), count)

    def test_failing_listener_does_not_stop_others(self):
        coordinator = ThrottledUpdateCoordinator()
        seen = []

        def broken(event):
            raise RuntimeError("listener bug")

        coordinator.subscribe(broken)
        coordinator.subscribe(seen.append)
        with patch("editcoder.core.coordinator.warning") as mock_warning:
            coordinator.complete_with([self._edit("a.py")])
        self.assertTrue(mock_warning.called)
        self.assertIs(seen[-1].state.kind, S.READY)


def test_display_buffer_advances_by_fixed_budget():
    coordinator = ThrottledUpdateCoordinator(config=EditStreamConfig(display_chars_per_tick=48))
    coordinator.on_fragment("x" * 100)
    assert coordinator.displayed_text == ""
    assert coordinator.display_tick()
    assert len(coordinator.displayed_text) == 48
    coordinator.display_tick()
    coordinator.display_tick()
    assert coordinator.displayed_text == coordinator.text
    assert not coordinator.display_tick()
    # 显示缓冲区不参与解析
    assert coordinator.parse_count == 0


def test_run_until_terminal_drives_ticks(fast_config):
    coordinator = ThrottledUpdateCoordinator(config=fast_config)
    text = build_response(("a.py", "print(1)"), ("b.py", "print(2)"))

    async def scenario():
        runner = asyncio.ensure_future(coordinator.run_until_terminal())
        for start in range(0, len(text), 7):
            coordinator.on_fragment(text[start:start + 7])
            await asyncio.sleep(0)
        coordinator.on_complete()
        return await asyncio.wait_for(runner, timeout=5)

    state = asyncio.run(scenario())
    assert state.kind is S.READY
    assert [e.path for e in state.edits] == ["a.py", "b.py"]
    assert coordinator.displayed_text == text


@pytest.mark.parametrize("current", list(S))
def test_every_state_has_legal_exit(current):
    assert LEGAL_TRANSITIONS[current]
