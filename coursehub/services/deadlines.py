"""Per-request deadlines.

The timeout middleware answers 504 when a request runs past its budget, but a
sync handler keeps running in its worker thread. Handlers that write after a
slow external call check ``expired`` first so nothing is committed for a
request the client was already told had timed out.
"""
import time

from fastapi import Request

clock = time.monotonic


def start_deadline(request: Request, seconds: float) -> float:
    deadline = clock() + seconds
    request.state.deadline = deadline
    return deadline


def expired(request: Request) -> bool:
    deadline = getattr(request.state, "deadline", None)
    return deadline is not None and clock() >= deadline
