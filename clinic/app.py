"""FastAPI application exposing the clinic administration backend."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import Depends, FastAPI

from . import store
from .auth import require_current_session
from .routes import (
    appointments_router,
    auth_router,
    expenses_router,
    finance_router,
    incomes_router,
    patients_router,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    logger.info("Initializing record store at %s", store.DB_PATH)
    store.initialize()
    yield


def create_app() -> FastAPI:
    """Return a configured FastAPI app (useful for testing)."""
    api = FastAPI(title="Clinic Administration API", version="0.1.0", lifespan=lifespan)
    api.include_router(auth_router)
    auth_dependency = [Depends(require_current_session)]
    for protected_router in (
        patients_router,
        appointments_router,
        incomes_router,
        expenses_router,
        finance_router,
    ):
        api.include_router(protected_router, dependencies=auth_dependency)
    return api


app = create_app()
