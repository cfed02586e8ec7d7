from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

from .errors import LoopStackUnderflow, TapeOverflow

DEFAULT_TAPE_CAPACITY = 30000


class Instruction(Enum):
    MOVE_RIGHT = ord(">")
    MOVE_LEFT = ord("<")
    INCREMENT = ord("+")
    DECREMENT = ord("-")
    OUTPUT = ord(".")
    INPUT = ord(",")
    LOOP_OPEN = ord("[")
    LOOP_CLOSE = ord("]")
    NOOP = -1

    @classmethod
    def _missing_(cls, value: object) -> "Instruction":
        # Comments, whitespace and every other byte dispatch as a no-op.
        return cls.NOOP

    @classmethod
    def decode(cls, byte: int) -> "Instruction":
        return cls(byte)


@dataclass
class ExecutionState:
    step: int
    offset: int
    command: Optional[str]
    pointer: int
    tape_start: int
    tape: List[int]
    output: bytes
    code_length: int
    loop_depth: int
    skipping: bool


@dataclass
class Tape:
    capacity: int = DEFAULT_TAPE_CAPACITY

    cells: bytearray = field(init=False, repr=False)
    pointer: int = field(init=False, default=0)

    def __post_init__(self) -> None:
        if self.capacity < 1:
            raise ValueError("Tape capacity must be at least one cell")
        self.cells = bytearray(self.capacity)

    def move_right(self) -> None:
        if self.pointer + 1 >= self.capacity:
            raise TapeOverflow(
                f"Pointer moved beyond the tape capacity of {self.capacity} cells"
            )
        self.pointer += 1

    def move_left(self) -> None:
        if self.pointer > 0:
            self.pointer -= 1

    def increment(self) -> None:
        self.cells[self.pointer] = (self.cells[self.pointer] + 1) % 256

    def decrement(self) -> None:
        self.cells[self.pointer] = (self.cells[self.pointer] - 1) % 256

    def read(self) -> int:
        return self.cells[self.pointer]

    def write(self, value: int) -> None:
        self.cells[self.pointer] = value & 0xFF

    def window(self, radius: int) -> Tuple[int, List[int]]:
        start = max(0, self.pointer - radius)
        end = min(self.capacity, self.pointer + radius + 1)
        return start, list(self.cells[start:end])


@dataclass
class ProgramCursor:
    program: bytes
    offset: int = 0

    def __len__(self) -> int:
        return len(self.program)

    @property
    def finished(self) -> bool:
        return self.offset >= len(self.program)

    def current(self) -> int:
        return self.program[self.offset]

    def advance(self) -> None:
        self.offset += 1

    def jump(self, offset: int) -> None:
        self.offset = offset


class LoopStack:
    """Offsets of the loop-open instructions that are still unmatched."""

    def __init__(self) -> None:
        self._offsets: List[int] = []

    def __len__(self) -> int:
        return len(self._offsets)

    def push(self, offset: int) -> None:
        self._offsets.append(offset)

    def pop(self) -> int:
        if not self._offsets:
            raise LoopStackUnderflow("Unmatched ']' with no open loop")
        return self._offsets.pop()

    def as_list(self) -> List[int]:
        return list(self._offsets)


class SkipController:
    """Tracks the body of a loop that was entered with a zero guard cell.

    ``depth`` is the loop stack length right after the skipped '[' was pushed;
    skipping ends at the ']' that pops that entry.
    """

    def __init__(self) -> None:
        self.depth: Optional[int] = None

    @property
    def active(self) -> bool:
        return self.depth is not None

    def begin(self, depth: int) -> None:
        self.depth = depth

    def end_if_matched(self, depth: int) -> None:
        if self.depth == depth:
            self.depth = None


@dataclass
class MachineState:
    program: bytes
    tape_capacity: int = DEFAULT_TAPE_CAPACITY

    tape: Tape = field(init=False)
    cursor: ProgramCursor = field(init=False)
    loops: LoopStack = field(init=False, repr=False)
    skip: SkipController = field(init=False, repr=False)
    pending_input: bool = field(init=False, default=False)

    def __post_init__(self) -> None:
        self.program = bytes(self.program)
        self.tape = Tape(self.tape_capacity)
        self.cursor = ProgramCursor(self.program)
        self.loops = LoopStack()
        self.skip = SkipController()


def step(state: MachineState, byte: int) -> Optional[int]:
    """Consume one byte and return the output byte it produced, if any.

    While ``state.pending_input`` is set the byte is data for the preceding
    ',' and is stored in the current cell without touching the cursor.
    """
    tape = state.tape
    if state.pending_input:
        tape.write(byte)
        state.pending_input = False
        return None

    state.cursor.advance()
    instruction = Instruction.decode(byte)

    if instruction is Instruction.LOOP_CLOSE:
        depth = len(state.loops)
        loop_start = state.loops.pop()
        if not state.skip.active:
            if tape.read() != 0:
                state.cursor.jump(loop_start)
        else:
            state.skip.end_if_matched(depth)
        return None

    if instruction is Instruction.LOOP_OPEN:
        state.loops.push(state.cursor.offset - 1)
        if not state.skip.active and tape.read() == 0:
            state.skip.begin(len(state.loops))
        return None

    if state.skip.active:
        return None

    if instruction is Instruction.MOVE_RIGHT:
        tape.move_right()
    elif instruction is Instruction.MOVE_LEFT:
        tape.move_left()
    elif instruction is Instruction.INCREMENT:
        tape.increment()
    elif instruction is Instruction.DECREMENT:
        tape.decrement()
    elif instruction is Instruction.OUTPUT:
        return tape.read()
    elif instruction is Instruction.INPUT:
        state.pending_input = True
    return None


class Engine:
    """Single-pass interpreter for one program; performs no I/O itself."""

    def __init__(self, program: bytes, tape_capacity: int = DEFAULT_TAPE_CAPACITY) -> None:
        self.state = MachineState(program, tape_capacity=tape_capacity)

    @property
    def tape(self) -> Tape:
        return self.state.tape

    @property
    def cursor(self) -> ProgramCursor:
        return self.state.cursor

    @property
    def loops(self) -> LoopStack:
        return self.state.loops

    @property
    def skip(self) -> SkipController:
        return self.state.skip

    @property
    def pending_input(self) -> bool:
        return self.state.pending_input

    @property
    def finished(self) -> bool:
        return self.state.cursor.finished and not self.state.pending_input

    def next_instruction(self) -> int:
        return self.state.cursor.current()

    def interpret(self, byte: int) -> Optional[int]:
        return step(self.state, byte)

    def snapshot(
        self,
        step: int,
        command: Optional[str],
        output: bytes,
        tape_window: int = 10,
    ) -> ExecutionState:
        start, tape_view = self.state.tape.window(tape_window)
        return ExecutionState(
            step=step,
            offset=self.state.cursor.offset,
            command=command,
            pointer=self.state.tape.pointer,
            tape_start=start,
            tape=tape_view,
            output=bytes(output),
            code_length=len(self.state.cursor),
            loop_depth=len(self.state.loops),
            skipping=self.state.skip.active,
        )


__all__ = [
    "DEFAULT_TAPE_CAPACITY",
    "Engine",
    "ExecutionState",
    "Instruction",
    "LoopStack",
    "MachineState",
    "ProgramCursor",
    "SkipController",
    "Tape",
    "step",
]
