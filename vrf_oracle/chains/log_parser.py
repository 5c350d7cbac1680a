from __future__ import annotations

import base64
import binascii
import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Sequence

# Program output markers: free-form text and binary (base64) event payloads
OUTPUT_PREFIXES = ("Program log: ", "Program data: ")

_RE_INVOKE = re.compile(r"^Program (.*) invoke.*$")
_RE_RETURN = re.compile(r"^Program (.*) success*$")
_RE_BASE64 = re.compile(r"^[A-Za-z0-9+/=]*$")


class LineKind(str, Enum):
    TRIVIA = "trivia"
    DATA = "data"
    INVOKE = "invoke"
    RETURN = "return"
    IN_PROGRAM = "in_program"


@dataclass(frozen=True)
class AnchorEvent:
    program_id: str
    data: bytes


@dataclass(frozen=True)
class ParseLogError:
    line: str

    def __str__(self) -> str:
        return f"{type(self).__name__}(line={self.line!r})"


@dataclass(frozen=True)
class ProgramIdMismatch(ParseLogError):
    current: str | None
    expected: str

    def __str__(self) -> str:
        return (
            f"ProgramIdMismatch(line={self.line!r}, current={self.current!r}, "
            f"expected={self.expected!r})"
        )


@dataclass(frozen=True)
class NoCurrentProgramId(ParseLogError):
    pass


@dataclass(frozen=True)
class PayloadDecodeError(ParseLogError):
    detail: str

    def __str__(self) -> str:
        return f"PayloadDecodeError(line={self.line!r}, detail={self.detail!r})"


@dataclass(frozen=True)
class MalformedInvokeLine(ParseLogError):
    pass


@dataclass(frozen=True)
class MalformedReturnLine(ParseLogError):
    pass


def _valid_program_id(value: str) -> bool:
    return bool(value) and not any(c.isspace() for c in value)


def classify_line(line: str) -> tuple[LineKind, str | None]:
    """Classify one raw log line; first matching rule wins."""
    for prefix in OUTPUT_PREFIXES:
        if line.startswith(prefix):
            payload = line[len(prefix):]
            if _RE_BASE64.match(payload):
                return LineKind.DATA, payload
            return LineKind.TRIVIA, None

    m = _RE_INVOKE.match(line)
    if m:
        return LineKind.INVOKE, m.group(1)

    m = _RE_RETURN.match(line)
    if m:
        return LineKind.RETURN, m.group(1)

    if line.startswith("Program "):
        rest = line[len("Program "):]
        end = rest.find(" ")
        if end != -1:
            return LineKind.IN_PROGRAM, rest[:end]

    return LineKind.TRIVIA, None


def parse_logs(
    logs: Sequence[str], program_ids: Iterable[str]
) -> tuple[list[AnchorEvent], list[ParseLogError]]:
    """Turn one transaction's log lines into events for the tracked programs.

    The invocation stack mirrors the CPI nesting of the trace: ``invoke`` pushes,
    ``success`` pops. Data lines are attributed to the program on top of the
    stack. Inconsistencies are collected as errors and parsing goes on, so one
    bad line never hides valid events elsewhere in the batch.
    """
    tracked = set(program_ids)
    events: list[AnchorEvent] = []
    errors: list[ParseLogError] = []
    cpi_stack: list[str] = []

    for line in logs:
        kind, value = classify_line(line)

        if kind is LineKind.INVOKE:
            if not _valid_program_id(value or ""):
                errors.append(MalformedInvokeLine(line=line))
                continue
            cpi_stack.append(value)

        elif kind is LineKind.RETURN:
            if not _valid_program_id(value or ""):
                errors.append(MalformedReturnLine(line=line))
                continue
            if cpi_stack:
                popped = cpi_stack.pop()
                # advisory only; the frame is popped either way
                if popped != value:
                    errors.append(ProgramIdMismatch(line=line, current=popped, expected=value))

        elif kind is LineKind.IN_PROGRAM:
            if not cpi_stack:
                errors.append(NoCurrentProgramId(line=line))
                continue
            if cpi_stack[-1] != value:
                errors.append(ProgramIdMismatch(line=line, current=cpi_stack[-1], expected=value))
                continue

        elif kind is LineKind.DATA:
            if not cpi_stack:
                errors.append(NoCurrentProgramId(line=line))
                continue
            current = cpi_stack[-1]
            if current not in tracked:
                continue
            try:
                data = base64.b64decode(value, validate=True)
            except (binascii.Error, ValueError) as e:
                errors.append(PayloadDecodeError(line=line, detail=str(e)))
                continue
            events.append(AnchorEvent(program_id=current, data=data))

    return events, errors
