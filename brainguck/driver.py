from __future__ import annotations

import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Iterator, Optional

from .errors import BrainguckError, InputExhausted, StepLimitExceeded, UnclosedLoop
from .interpreter import DEFAULT_TAPE_CAPACITY, Engine, ExecutionState

logger = logging.getLogger(__name__)


@dataclass
class RunResult:
    processed: int
    open_loops: int
    output: bytes

    @property
    def balanced(self) -> bool:
        return self.open_loops == 0


class Driver:
    """Feeds a program through an :class:`Engine` and services its I/O requests.

    Output bytes are written and flushed as soon as the engine produces them.
    Input is read one byte at a time, only when a ',' asks for it. Any
    :class:`BrainguckError` raised during a run carries ``processed``, the
    number of program bytes dispatched before the failure.
    """

    def __init__(
        self,
        program: bytes,
        stdin: Optional[BinaryIO] = None,
        stdout: Optional[BinaryIO] = None,
        *,
        tape_capacity: int = DEFAULT_TAPE_CAPACITY,
        max_steps: Optional[int] = None,
        strict: bool = False,
    ) -> None:
        self.program = bytes(program)
        self.stdin = stdin
        self.stdout = stdout
        self.tape_capacity = tape_capacity
        self.max_steps = max_steps
        self.strict = strict
        self.reset()

    def reset(self) -> None:
        self.engine = Engine(self.program, tape_capacity=self.tape_capacity)
        self.processed = 0
        self.transcript = bytearray()
        self.result: Optional[RunResult] = None

    @property
    def finished(self) -> bool:
        return self.engine.finished

    def run(self) -> RunResult:
        logger.debug("Running %d byte program", len(self.program))
        while not self.engine.finished:
            self.advance()
        self.result = self._complete()
        return self.result

    def trace(self, tape_window: int = 10) -> Iterator[ExecutionState]:
        while not self.engine.finished:
            command = chr(self.engine.next_instruction())
            self.advance()
            yield self.engine.snapshot(self.processed, command, self.transcript, tape_window)
        self.result = self._complete()
        # Emit final snapshot indicating completion
        yield self.engine.snapshot(self.processed, None, self.transcript, tape_window)

    def advance(self) -> None:
        """Dispatch the next program byte, including any input it requests."""
        if self.max_steps is not None and self.processed >= self.max_steps:
            raise StepLimitExceeded(
                "Program exceeded allowed step count", processed=self.processed
            )
        try:
            output = self.engine.interpret(self.engine.next_instruction())
            if output is not None:
                self._emit(output)
            if self.engine.pending_input:
                self.engine.interpret(self._read_input())
        except BrainguckError as exc:
            exc.processed = self.processed
            logger.debug("Run aborted after %d bytes: %s", self.processed, exc)
            raise
        self.processed += 1

    def _emit(self, value: int) -> None:
        self.transcript.append(value)
        if self.stdout is not None:
            self.stdout.write(bytes([value]))
            self.stdout.flush()

    def _read_input(self) -> int:
        data = self.stdin.read(1) if self.stdin is not None else b""
        if not data:
            raise InputExhausted("Input exhausted while reading for ','")
        return data[0]

    def _complete(self) -> RunResult:
        open_loops = len(self.engine.loops)
        if open_loops:
            if self.strict:
                raise UnclosedLoop(
                    f"Program ended with {open_loops} unclosed loop(s)",
                    processed=self.processed,
                )
            logger.warning("Program ended with %d unclosed loop(s)", open_loops)
        logger.debug("Processed %d bytes", self.processed)
        return RunResult(
            processed=self.processed,
            open_loops=open_loops,
            output=bytes(self.transcript),
        )


def run(
    program: bytes,
    stdin: Optional[BinaryIO] = None,
    stdout: Optional[BinaryIO] = None,
    **options,
) -> RunResult:
    return Driver(program, stdin, stdout, **options).run()


def load_program(path: str) -> bytes:
    source_path = Path(path)
    if not source_path.exists():
        raise FileNotFoundError(f"Source file not found: {path}")
    return source_path.read_bytes()


def interpret_file(
    path: str,
    stdin: Optional[BinaryIO] = None,
    stdout: Optional[BinaryIO] = None,
    **options,
) -> RunResult:
    return run(
        load_program(path),
        stdin if stdin is not None else sys.stdin.buffer,
        stdout if stdout is not None else sys.stdout.buffer,
        **options,
    )


__all__ = ["Driver", "RunResult", "interpret_file", "load_program", "run"]
