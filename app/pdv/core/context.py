from dataclasses import dataclass

from fastapi import Request


@dataclass(frozen=True)
class OperatorContext:
    operator_id: str
    username: str
    terminal_id: str
    role: str | None = None
    trace_id: str = ""


def build_operator_context(
    *,
    operator_id: str,
    username: str,
    terminal_id: str,
    role: str | None,
    trace_id: str,
) -> OperatorContext:
    return OperatorContext(
        operator_id=operator_id,
        username=username,
        terminal_id=terminal_id,
        role=role,
        trace_id=trace_id,
    )


def get_trace_id(request: Request) -> str:
    return getattr(request.state, "trace_id", "")
