"""Deployable services. Each one lives in `apps/<name>/app` with its FastAPI app in `main.py`."""
