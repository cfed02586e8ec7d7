from .driver import Driver, RunResult, interpret_file, load_program, run
from .errors import (
    BrainguckError,
    InputExhausted,
    LoopStackUnderflow,
    StepLimitExceeded,
    TapeOverflow,
    UnclosedLoop,
)
from .interpreter import Engine, ExecutionState, Instruction, MachineState, step
from .visualizer import VisualizerSession

__all__ = [
    "BrainguckError",
    "Driver",
    "Engine",
    "ExecutionState",
    "InputExhausted",
    "Instruction",
    "LoopStackUnderflow",
    "MachineState",
    "RunResult",
    "StepLimitExceeded",
    "TapeOverflow",
    "UnclosedLoop",
    "VisualizerSession",
    "interpret_file",
    "load_program",
    "run",
    "step",
]
