"""CORS for the app and widget origins that read streak snapshots and submit activity."""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from streakline.config import Settings


def setup_cors(app: FastAPI, settings: Settings) -> None:
    """Allow the configured app/widget origins to read streak snapshots."""
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["X-Request-Id"],
    )
