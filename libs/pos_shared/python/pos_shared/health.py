from __future__ import annotations

import os
from collections.abc import Callable

from fastapi import FastAPI


def add_standard_health(app: FastAPI, extra: Callable[[], dict] | None = None, env_key: str = "ENV"):
    """
    Mount GET /health. `extra` contributes service specific fields,
    e.g. which storage backend is active.
    """

    @app.get("/health")
    def _health():
        body = {
            "status": "ok",
            "env": os.getenv(env_key, "dev"),
            "service": app.title,
            "version": getattr(app, "version", None),
        }
        if extra is not None:
            body.update(extra())
        return body
