from collections.abc import Callable
from contextlib import asynccontextmanager

from fastapi import FastAPI


def startup_lifespan(*hooks: Callable[[], None]):
    """
    Build a FastAPI `lifespan` that runs blocking startup hooks in order,
    replacing the deprecated @on_event / on_startup registration.
    Usage:
        app = FastAPI(lifespan=startup_lifespan(store.bootstrap))
    """

    @asynccontextmanager
    async def _lifespan(app: FastAPI):
        for hook in hooks:
            hook()
        yield

    return _lifespan
