import io
import unittest
from contextlib import redirect_stderr, redirect_stdout
from unittest import mock

from brainguck import ExecutionState, InputExhausted, StepLimitExceeded, VisualizerSession
from brainguck.visualizer import _format_code_window, format_state, run_repl


class VisualizerSessionTests(unittest.TestCase):
    def test_basic_stepping(self) -> None:
        session = VisualizerSession(b"+++.", input_template=b"", tape_window=2, max_steps=100)
        initial = session.current_state()
        self.assertIsNone(initial.command)
        self.assertEqual(initial.step, 0)
        states = session.step_forward(2)
        self.assertEqual(len(states), 2)
        self.assertEqual(states[-1].step, 2)
        self.assertFalse(session.is_finished())

    def test_breakpoint(self) -> None:
        session = VisualizerSession(b"+++.", input_template=b"", tape_window=2, max_steps=100)
        session.add_breakpoint(2)
        session.run_until_break()
        self.assertEqual(session.hit_breakpoint, 2)
        self.assertEqual(session.current_state().offset, 2)

    def test_restart(self) -> None:
        session = VisualizerSession(b"+.", input_template=b"", tape_window=2, max_steps=100)
        session.step_forward(3)
        self.assertTrue(session.is_finished())
        session.restart()
        self.assertFalse(session.is_finished())
        self.assertEqual(session.current_state().step, 0)

    def test_input_template_feeds_reads(self) -> None:
        session = VisualizerSession(b",.", input_template=b"z")
        states = session.run_until_break()
        self.assertEqual(states[-1].output, b"z")
        self.assertTrue(session.is_finished())
        self.assertIsNone(session.error)

    def test_loop_breakpoint_hits_on_every_iteration(self) -> None:
        session = VisualizerSession(b"++[-]", input_template=b"")
        session.add_breakpoint(3)
        session.run_until_break()
        self.assertEqual(session.current_state().step, 3)
        session.run_until_break()
        self.assertEqual(session.current_state().step, 6)
        self.assertEqual(session.current_state().tape[0], 1)


class VisualizerSessionAdvancedTests(unittest.TestCase):
    def test_step_forward_zero_count_keeps_state(self) -> None:
        session = VisualizerSession(b"++", input_template=b"", history_limit=5)
        initial_state = session.current_state()
        states = session.step_forward(0)
        self.assertEqual(states, [])
        self.assertIs(session.current_state(), initial_state)
        self.assertFalse(session.is_finished())
        self.assertIsNone(session.hit_breakpoint)

    def test_run_until_break_limit(self) -> None:
        session = VisualizerSession(b"+++++.", input_template=b"", max_steps=100)
        session.add_breakpoint(5)
        states = session.run_until_break(limit=2)
        self.assertEqual(len(states), 2)
        self.assertIsNone(session.hit_breakpoint)
        self.assertEqual(session.current_state(), states[-1])
        self.assertFalse(session.is_finished())

    def test_run_until_break_propagates_step_limit(self) -> None:
        session = VisualizerSession(b"+[]", input_template=b"", max_steps=2)
        with self.assertRaises(StepLimitExceeded):
            session.run_until_break()
        self.assertTrue(session.is_finished())
        self.assertIsNotNone(session.error)

    def test_input_exhausted_finishes_session(self) -> None:
        session = VisualizerSession(b"+,.", input_template=b"")
        session.step_forward(1)
        with self.assertRaises(InputExhausted):
            session.step_forward(1)
        self.assertTrue(session.is_finished())
        self.assertEqual(session.step_forward(1), [])

    def test_history_limit_discards_old_entries(self) -> None:
        session = VisualizerSession(b"+++++.", input_template=b"", history_limit=3, max_steps=100)
        session.step_forward(5)
        self.assertEqual(len(session.history), 3)
        self.assertGreater(session.history[0].step, 0)
        self.assertEqual(session.history[-1], session.current_state())

    def test_breakpoint_management_helpers(self) -> None:
        session = VisualizerSession(b"+++.", input_template=b"")
        session.add_breakpoint(3)
        session.add_breakpoint(1)
        self.assertEqual(session.list_breakpoints(), [1, 3])
        self.assertTrue(session.remove_breakpoint(1))
        self.assertFalse(session.remove_breakpoint(99))
        session.clear_breakpoints()
        self.assertEqual(session.list_breakpoints(), [])

    def test_exposes_loop_stack_and_remaining_input(self) -> None:
        session = VisualizerSession(b",[[-]", input_template=b"\x02z")
        session.step_forward(3)
        self.assertEqual(session.loop_offsets(), [1, 2])
        self.assertIsNone(session.skip_depth())
        self.assertEqual(session.remaining_input(), b"z")
        self.assertEqual(session.cells(0, 2), [2, 0])

    def test_result_available_once_finished(self) -> None:
        session = VisualizerSession(b"+[", input_template=b"")
        self.assertIsNone(session.result)
        session.run_until_break()
        self.assertTrue(session.is_finished())
        self.assertEqual(session.result.processed, 2)
        self.assertEqual(session.result.open_loops, 1)


class VisualizerUtilityTests(unittest.TestCase):
    def test_format_code_window_marks_end(self) -> None:
        self.assertEqual(_format_code_window(b"+", 5), "+[END]")

    def test_format_code_window_marks_cursor(self) -> None:
        self.assertEqual(_format_code_window(b"+-<>", 2, window=1), "-[<]>")

    def test_format_code_window_masks_unprintable(self) -> None:
        self.assertEqual(_format_code_window(b"+\n.", 0), "[+]?.")

    def test_format_state_renders_core_sections(self) -> None:
        state = ExecutionState(
            step=3,
            offset=1,
            command="+",
            pointer=1,
            tape_start=0,
            tape=[1, 2, 3],
            output=b"A",
            code_length=3,
            loop_depth=0,
            skipping=False,
        )
        rendered = format_state(state, b"++.")
        self.assertIn("step=3 offset=1/3 command='+' pointer=1 loops=0", rendered)
        self.assertIn("output=b'A'", rendered)
        self.assertIn("[1:002]", rendered)
        self.assertIn("code=+[+].", rendered)


class ReplTests(unittest.TestCase):
    def _run(self, session: VisualizerSession, commands) -> tuple:
        stdout, stderr = io.StringIO(), io.StringIO()
        with mock.patch("builtins.input", side_effect=commands):
            with redirect_stdout(stdout), redirect_stderr(stderr):
                run_repl(session)
        return stdout.getvalue(), stderr.getvalue()

    def test_steps_and_lists_breakpoints(self) -> None:
        session = VisualizerSession(b"+.", input_template=b"")
        out, _ = self._run(session, ["next", "break 1", "break", "quit"])
        self.assertIn("step=1 offset=1/2", out)
        self.assertIn("ブレークポイント: 1", out)

    def test_shows_loop_stack_and_input(self) -> None:
        session = VisualizerSession(b"+[,[-]]", input_template=b"ab")
        out, _ = self._run(session, ["n 4", "loops", "input", "exit"])
        self.assertIn("ループスタック: 1, 3", out)
        self.assertIn("残り入力: b'b'", out)

    def test_dumps_tape_range(self) -> None:
        session = VisualizerSession(b"+>++", input_template=b"")
        out, _ = self._run(session, ["run", "tape 0 2", EOFError])
        self.assertIn("0:001  [1:002]", out)
        self.assertIn("終了: 4 バイト処理", out)

    def test_reports_execution_errors(self) -> None:
        session = VisualizerSession(b"]", input_template=b"")
        _, err = self._run(session, ["run", EOFError])
        self.assertIn("実行エラー", err)

    def test_rejects_bad_numbers_and_unknown_commands(self) -> None:
        session = VisualizerSession(b"+", input_template=b"")
        out, err = self._run(session, ["next x", "bogus", "quit"])
        self.assertIn("数値が正しくありません", err)
        self.assertIn("不明なコマンド", out)


if __name__ == "__main__":
    unittest.main()
