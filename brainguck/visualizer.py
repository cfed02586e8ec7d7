from __future__ import annotations

import argparse
import io
import shlex
import sys
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Dict, List, Optional

from .driver import Driver, RunResult, load_program
from .errors import BrainguckError
from .interpreter import DEFAULT_TAPE_CAPACITY, ExecutionState


@dataclass
class VisualizerSession:
    """Steps a program one dispatched byte at a time for inspection.

    A breakpoint is a program offset; stepping stops after any step that
    leaves the cursor on it, so a breakpoint inside a loop body fires on
    every iteration.
    """

    code: bytes
    input_template: bytes = b""
    tape_window: int = 10
    max_steps: Optional[int] = None
    history_limit: int = 200
    tape_capacity: int = DEFAULT_TAPE_CAPACITY

    def __post_init__(self) -> None:
        self.code = bytes(self.code)
        self.input_template = bytes(self.input_template)
        self.breakpoints: set[int] = set()
        self.history: Deque[ExecutionState] = deque(maxlen=self.history_limit)
        self.restart()

    def restart(self) -> None:
        self._input = io.BytesIO(self.input_template)
        self.driver = Driver(
            self.code,
            self._input,
            tape_capacity=self.tape_capacity,
            max_steps=self.max_steps,
        )
        self._states = self.driver.trace(tape_window=self.tape_window)
        self.error: Optional[BrainguckError] = None
        self.hit_breakpoint: Optional[int] = None
        self.history.clear()
        self.history.append(self.driver.engine.snapshot(0, None, b"", self.tape_window))

    @property
    def result(self) -> Optional[RunResult]:
        return self.driver.result

    def is_finished(self) -> bool:
        return self.result is not None or self.error is not None

    def current_state(self) -> ExecutionState:
        return self.history[-1]

    def loop_offsets(self) -> List[int]:
        return self.driver.engine.loops.as_list()

    def skip_depth(self) -> Optional[int]:
        return self.driver.engine.skip.depth

    def remaining_input(self) -> bytes:
        return self.input_template[self._input.tell():]

    def cells(self, start: int, end: int) -> List[int]:
        tape = self.driver.engine.tape
        return list(tape.cells[max(0, start):min(tape.capacity, end)])

    def step_forward(self, count: int = 1) -> List[ExecutionState]:
        self.hit_breakpoint = None
        states: List[ExecutionState] = []
        while len(states) < count and not self.is_finished():
            try:
                state = next(self._states)
            except BrainguckError as exc:
                self.error = exc
                raise
            self.history.append(state)
            states.append(state)
            if state.command is not None and state.offset in self.breakpoints:
                self.hit_breakpoint = state.offset
                break
        return states

    def run_until_break(self, limit: Optional[int] = None) -> List[ExecutionState]:
        return self.step_forward(sys.maxsize if limit is None else limit)

    def add_breakpoint(self, offset: int) -> None:
        self.breakpoints.add(offset)

    def remove_breakpoint(self, offset: int) -> bool:
        try:
            self.breakpoints.remove(offset)
        except KeyError:
            return False
        return True

    def clear_breakpoints(self) -> None:
        self.breakpoints.clear()

    def list_breakpoints(self) -> List[int]:
        return sorted(self.breakpoints)


def format_state(state: ExecutionState, code: bytes) -> str:
    header = (
        f"step={state.step} offset={state.offset}/{state.code_length} "
        f"command={state.command or '(init)'!r} pointer={state.pointer} "
        f"loops={state.loop_depth}"
    )
    if state.skipping:
        header += " skipping"
    lines = [header]
    if state.output:
        lines.append(f"output={state.output!r}")
    lines.append("tape=" + _format_cells(state.tape_start, state.tape, state.pointer))
    lines.append(f"code={_format_code_window(code, state.offset)}")
    return "\n".join(lines)


def _format_cells(start: int, cells: List[int], pointer: int) -> str:
    return " ".join(
        f"[{index}:{value:03}]" if index == pointer else f" {index}:{value:03} "
        for index, value in enumerate(cells, start)
    )


def _format_code_window(code: bytes, offset: int, window: int = 16) -> str:
    if not code:
        return "(empty)"
    text = "".join(
        chr(byte) if chr(byte).isprintable() else "?"
        for byte in code[max(0, offset - window):offset + window + 1]
    )
    if offset >= len(code):
        return text + "[END]"
    cursor = min(offset, window)
    return f"{text[:cursor]}[{text[cursor]}]{text[cursor + 1:]}"


Command = Callable[[VisualizerSession, List[str]], bool]


def _show_progress(session: VisualizerSession, states: List[ExecutionState]) -> None:
    if states:
        _print_state(states[-1], session)
    if session.hit_breakpoint is not None:
        print(f"ブレークポイント {session.hit_breakpoint} で停止しました。")
    elif session.result is not None:
        result = session.result
        print(f"終了: {result.processed} バイト処理, 未対応ループ {result.open_loops}")


def _cmd_next(session: VisualizerSession, args: List[str]) -> bool:
    count = max(1, int(args[0])) if args else 1
    _show_progress(session, session.step_forward(count))
    return True


def _cmd_run(session: VisualizerSession, args: List[str]) -> bool:
    limit = int(args[0]) if args else None
    _show_progress(session, session.run_until_break(limit))
    return True


def _cmd_state(session: VisualizerSession, args: List[str]) -> bool:
    _print_state(session.current_state(), session)
    return True


def _cmd_history(session: VisualizerSession, args: List[str]) -> bool:
    count = int(args[0]) if args else 10
    for state in list(session.history)[-count:]:
        _print_state(state, session)
    return True


def _cmd_loops(session: VisualizerSession, args: List[str]) -> bool:
    offsets = session.loop_offsets()
    print("ループスタック:", ", ".join(map(str, offsets)) if offsets else "(空)")
    depth = session.skip_depth()
    if depth is not None:
        print(f"スキップ中 (深さ {depth})")
    return True


def _cmd_input(session: VisualizerSession, args: List[str]) -> bool:
    print(f"残り入力: {session.remaining_input()!r}")
    if session.driver.engine.pending_input:
        print("入力待ちです。")
    return True


def _cmd_tape(session: VisualizerSession, args: List[str]) -> bool:
    start = int(args[0]) if args else 0
    end = int(args[1]) if len(args) > 1 else start + 16
    pointer = session.driver.engine.tape.pointer
    print(_format_cells(start, session.cells(start, end), pointer))
    return True


def _cmd_break(session: VisualizerSession, args: List[str]) -> bool:
    if not args:
        points = session.list_breakpoints()
        print("ブレークポイント:", ", ".join(map(str, points)) if points else "(なし)")
        return True
    for arg in args:
        session.add_breakpoint(int(arg))
    return True


def _cmd_clear(session: VisualizerSession, args: List[str]) -> bool:
    if not args:
        session.clear_breakpoints()
    for arg in args:
        if not session.remove_breakpoint(int(arg)):
            print(f"ブレークポイント {arg} は存在しません。")
    return True


def _cmd_restart(session: VisualizerSession, args: List[str]) -> bool:
    session.restart()
    _print_state(session.current_state(), session)
    return True


def _cmd_quit(session: VisualizerSession, args: List[str]) -> bool:
    return False


def _cmd_help(session: VisualizerSession, args: List[str]) -> bool:
    for name, (_, usage) in COMMANDS.items():
        print(f"  {name:<8} {usage}")
    return True


COMMANDS: Dict[str, tuple[Command, str]] = {
    "next": (_cmd_next, "[N]  N ステップ進める"),
    "run": (_cmd_run, "[N]  ブレークポイントか終了まで実行"),
    "state": (_cmd_state, "現在の状態"),
    "history": (_cmd_history, "[N]  直近 N ステップ"),
    "loops": (_cmd_loops, "ループスタックとスキップ状態"),
    "input": (_cmd_input, "未読の入力"),
    "tape": (_cmd_tape, "[START [END]]  セルの内容"),
    "break": (_cmd_break, "[OFFSET...]  設定 (省略で一覧)"),
    "clear": (_cmd_clear, "[OFFSET...]  削除 (省略で全削除)"),
    "restart": (_cmd_restart, "最初から"),
    "quit": (_cmd_quit, "終了"),
    "help": (_cmd_help, "このヘルプ"),
}
ALIASES = {"n": "next", "r": "run", "exit": "quit"}


def run_repl(session: VisualizerSession) -> None:
    print("brainguck Visualizer (type 'help' for commands)")
    _print_state(session.current_state(), session)
    while True:
        try:
            parts = shlex.split(input("(viz) "))
        except EOFError:
            print()
            return
        if not parts:
            continue
        name = ALIASES.get(parts[0].lower(), parts[0].lower())
        if name not in COMMANDS:
            print("不明なコマンドです。'help' を参照してください。")
            continue
        handler, _ = COMMANDS[name]
        try:
            if not handler(session, parts[1:]):
                return
        except ValueError:
            print("数値が正しくありません。", file=sys.stderr)
        except BrainguckError as exc:
            print(f"実行エラー: {exc} (処理済み {exc.processed} バイト)", file=sys.stderr)


def _print_state(state: ExecutionState, session: VisualizerSession) -> None:
    print("-" * 40)
    print(format_state(state, session.code))


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="brainguck step debugger")
    parser.add_argument("source", help="Path to the program source file")
    parser.add_argument("--input", default="", help="プログラムへの入力文字列")
    parser.add_argument(
        "-b",
        "--break",
        dest="breakpoints",
        type=int,
        action="append",
        default=[],
        help="開始時に設定するブレークポイント (複数可)",
    )
    parser.add_argument("--tape-size", type=int, default=DEFAULT_TAPE_CAPACITY)
    parser.add_argument("--tape-window", type=int, default=10, help="テープ表示の幅")
    parser.add_argument("--max-steps", type=int, default=5_000_000, help="ステップ上限")
    args = parser.parse_args(argv)

    try:
        program = load_program(args.source)
    except OSError as exc:
        print(f"ファイルを開けません: {exc}", file=sys.stderr)
        return 1

    session = VisualizerSession(
        program,
        input_template=args.input.encode("utf-8"),
        tape_window=args.tape_window,
        max_steps=args.max_steps,
        tape_capacity=args.tape_size,
    )
    for offset in args.breakpoints:
        session.add_breakpoint(offset)
    run_repl(session)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
