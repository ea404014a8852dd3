# -*- coding: utf-8 -*-
"""
Nutriapp sign-in API.

Email one-time codes, guest sessions and identity resolution.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .app_db import init_app_db
from .config import settings
from .identity.api import router as identity_router
from .otp.api import router as otp_router

logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(
    title="Nutriapp Auth",
    description="Email one-time-code sign-in and guest account upgrade",
    version="1.0.0",
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Create tables at import so test clients without lifespan events still work.
init_app_db(settings.app_db_path, settings.db_timeout)

app.include_router(otp_router)
app.include_router(identity_router)


@app.get("/api/health")
def health() -> dict:
    return {"ok": True}
