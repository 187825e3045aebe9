"""Package alias exposing the FastAPI app and the recommendation engine."""

from __future__ import annotations

from app.main import app, build_engine, create_app

__all__ = ["app", "build_engine", "create_app"]
