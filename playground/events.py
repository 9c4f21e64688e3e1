from typing import Literal, TypedDict, Union


class FilePayload(TypedDict):
    name: str
    content: str


# Client -> server
class InitMessage(TypedDict):
    type: Literal["init"]
    files: list[FilePayload]


class StdinMessage(TypedDict):
    type: Literal["stdin"]
    data: str


# Server -> client
class StdoutEvent(TypedDict):
    type: Literal["stdout"]
    data: str


class StderrEvent(TypedDict):
    type: Literal["stderr"]
    data: str


class CompileErrorEvent(TypedDict):
    type: Literal["compile_error"]
    data: str


class ExitEvent(TypedDict):
    type: Literal["exit"]
    code: int


class ErrorEvent(TypedDict):
    type: Literal["error"]
    message: str


# Discriminated union of everything the terminal client may receive
TerminalEvent = Union[StdoutEvent, StderrEvent, CompileErrorEvent, ExitEvent, ErrorEvent]
