"""Request-scoped access to the process runtime."""

from __future__ import annotations

import threading

from fastapi import Request

from ..services.fleet.runtime import FleetRuntime, build_runtime

_build_lock = threading.Lock()


def get_runtime(request: Request) -> FleetRuntime:
    """Runtime stored on the app, built on first use when none was supplied."""

    state = request.app.state
    if getattr(state, "runtime", None) is None:
        with _build_lock:
            if getattr(state, "runtime", None) is None:
                state.runtime = build_runtime()
    return state.runtime
