from __future__ import annotations

import codecs
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Request, Response, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, field_validator, model_validator

from brainguck.errors import BrainguckError
from brainguck.interpreter import DEFAULT_TAPE_CAPACITY, ExecutionState
from brainguck.visualizer import VisualizerSession

from .session import SessionRecord, SessionStore

MAX_TAPE_SIZE = 1_000_000
MAX_TAPE_WINDOW = 1_000
MAX_HISTORY = 10_000
MAX_STEPS_PER_REQUEST = 1_000_000


class SessionConfiguration(BaseModel):
    code: str = ""
    input: str = ""
    input_encoding: str = "utf-8"
    tape_size: int = Field(default=DEFAULT_TAPE_CAPACITY, ge=1, le=MAX_TAPE_SIZE)
    tape_window: int = Field(default=10, ge=0, le=MAX_TAPE_WINDOW)
    history_limit: int = Field(default=200, ge=1, le=MAX_HISTORY)
    max_steps: Optional[int] = Field(default=None, ge=1)

    @field_validator("input_encoding")
    @classmethod
    def validate_input_encoding(cls, value: str) -> str:
        try:
            return codecs.lookup(value).name
        except LookupError as exc:
            raise ValueError(f"unknown encoding: {value}") from exc

    @model_validator(mode="after")
    def validate_input_encodable(self) -> "SessionConfiguration":
        self.input_bytes()
        return self

    def input_bytes(self) -> bytes:
        try:
            return self.input.encode(self.input_encoding)
        except UnicodeEncodeError as exc:
            raise ValueError(f"input is not encodable as {self.input_encoding}") from exc


class StateView(BaseModel):
    step: int
    offset: int
    command: Optional[str]
    pointer: int
    tape_start: int
    tape: List[int]
    # one character per output byte
    output: str
    loop_depth: int
    skipping: bool

    @classmethod
    def from_state(cls, state: ExecutionState) -> "StateView":
        return cls(
            step=state.step,
            offset=state.offset,
            command=state.command,
            pointer=state.pointer,
            tape_start=state.tape_start,
            tape=state.tape,
            output=state.output.decode("latin-1"),
            loop_depth=state.loop_depth,
            skipping=state.skipping,
        )


class ResultView(BaseModel):
    processed: int
    open_loops: int
    balanced: bool


class SessionView(BaseModel):
    session_id: str
    code: str
    code_length: int
    state: StateView
    states: List[StateView] = []
    history: List[StateView]
    loop_stack: List[int]
    finished: bool
    error: Optional[str]
    result: Optional[ResultView]
    breakpoints: List[int]
    hit_breakpoint: Optional[int]


class StepRequest(BaseModel):
    count: int = Field(default=1, ge=1, le=MAX_STEPS_PER_REQUEST)


class RunRequest(BaseModel):
    limit: Optional[int] = Field(default=None, ge=1, le=MAX_STEPS_PER_REQUEST)
    ignore_breakpoints: bool = False


class BreakpointRequest(BaseModel):
    offset: int = Field(ge=0)


def _view(record: SessionRecord, states: Optional[List[ExecutionState]] = None) -> SessionView:
    session = record.session
    result = record.result
    return SessionView(
        session_id=record.session_id,
        code=record.source,
        code_length=len(session.code),
        state=StateView.from_state(session.current_state()),
        states=[StateView.from_state(state) for state in states or []],
        history=[StateView.from_state(state) for state in session.history],
        loop_stack=session.loop_offsets(),
        finished=session.is_finished(),
        error=str(session.error) if session.error is not None else None,
        result=(
            ResultView(
                processed=result.processed,
                open_loops=result.open_loops,
                balanced=result.balanced,
            )
            if result is not None
            else None
        ),
        breakpoints=session.list_breakpoints(),
        hit_breakpoint=session.hit_breakpoint,
    )


def create_app(store: Optional[SessionStore] = None) -> FastAPI:
    sessions = store if store is not None else SessionStore()
    app = FastAPI(title="brainguck Debugger API", version="0.1.0")

    @app.exception_handler(BrainguckError)
    async def execution_fault(request: Request, exc: BrainguckError) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT,
            content={"detail": f"{exc} (processed {exc.processed} bytes)"},
        )

    def session_record(session_id: str) -> SessionRecord:
        try:
            return sessions.get(session_id)
        except KeyError as exc:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc

    @app.post("/api/session", response_model=SessionView, status_code=status.HTTP_201_CREATED)
    def create_session(payload: SessionConfiguration) -> SessionView:
        session = VisualizerSession(
            payload.code.encode("utf-8"),
            input_template=payload.input_bytes(),
            tape_window=payload.tape_window,
            max_steps=payload.max_steps,
            history_limit=payload.history_limit,
            tape_capacity=payload.tape_size,
        )
        return _view(sessions.add(session, payload.code))

    @app.get("/api/session/{session_id}", response_model=SessionView)
    def get_session(record: SessionRecord = Depends(session_record)) -> SessionView:
        return _view(record)

    @app.post("/api/session/{session_id}/reset", response_model=SessionView)
    def reset_session(record: SessionRecord = Depends(session_record)) -> SessionView:
        record.session.clear_breakpoints()
        record.session.restart()
        return _view(record)

    @app.post("/api/session/{session_id}/step", response_model=SessionView)
    def step_session(
        payload: StepRequest, record: SessionRecord = Depends(session_record)
    ) -> SessionView:
        return _view(record, record.session.step_forward(payload.count))

    @app.post("/api/session/{session_id}/run", response_model=SessionView)
    def run_session(
        payload: RunRequest, record: SessionRecord = Depends(session_record)
    ) -> SessionView:
        session = record.session
        saved = set(session.breakpoints)
        if payload.ignore_breakpoints:
            session.clear_breakpoints()
        try:
            states = session.run_until_break(payload.limit or MAX_STEPS_PER_REQUEST)
        finally:
            session.breakpoints = saved
        return _view(record, states)

    @app.post("/api/session/{session_id}/breakpoints", response_model=SessionView)
    def add_breakpoint(
        payload: BreakpointRequest, record: SessionRecord = Depends(session_record)
    ) -> SessionView:
        record.session.add_breakpoint(payload.offset)
        return _view(record)

    @app.delete("/api/session/{session_id}/breakpoints/{offset}", response_model=SessionView)
    def remove_breakpoint(
        offset: int, record: SessionRecord = Depends(session_record)
    ) -> SessionView:
        if not record.session.remove_breakpoint(offset):
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Breakpoint not found at offset={offset}",
            )
        return _view(record)

    @app.delete("/api/session/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
    def delete_session(session_id: str) -> Response:
        if not sessions.remove(session_id):
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Unknown session id: {session_id}",
            )
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    return app


__all__ = ["create_app", "SessionConfiguration"]
