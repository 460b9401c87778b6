from __future__ import annotations

from fastapi.middleware.cors import CORSMiddleware

# Till frontends served by the Vite dev server.
DEFAULT_DEV_ORIGINS = [
    "http://localhost:5173",
    "http://localhost:5174",
    "http://localhost:5175",
]


def parse_origins(allowed: str | None) -> list[str]:
    return [o.strip() for o in (allowed or "").split(",") if o.strip()] or list(DEFAULT_DEV_ORIGINS)


def configure_cors(app, allowed: str | None):
    origins = parse_origins(allowed)
    # Wildcard origins must not be combined with credentialed requests.
    allow_credentials = "*" not in origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if not allow_credentials else origins,
        allow_credentials=allow_credentials,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )
