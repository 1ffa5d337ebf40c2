# Copyright 2024 Heinrich Krupp
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
FastAPI application for the Social Graph Service.

``create_app`` wires the routers, CORS and the domain-error handlers. The
lifespan opens an AppContext from settings, unless a context is injected
(tests do this), in which case the caller owns its lifecycle.

Usage:
    uvicorn social_graph_service.web.app:create_app --factory
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse

from .. import __version__
from ..config import Settings
from ..context import AppContext
from ..models.responses import HealthResult
from ..storage.base import StorageError
from ..utils.errors import ConflictError, InvalidOperationError, NotFoundError
from .api import graph, users
from .dependencies import get_context

logger = logging.getLogger(__name__)

API_PREFIX = "/api"

ERROR_STATUS = {
    NotFoundError: 404,
    ConflictError: 409,
    InvalidOperationError: 400,
}


def _register_exception_handlers(app: FastAPI) -> None:
    async def domain_error_handler(request: Request, exc: Exception) -> JSONResponse:
        status = ERROR_STATUS[type(exc)]
        logger.debug(f"{request.method} {request.url.path} -> {status}: {exc}")
        return JSONResponse(status_code=status, content={"message": str(exc)})

    async def storage_error_handler(request: Request, exc: StorageError) -> JSONResponse:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
        return JSONResponse(status_code=503, content={"message": "Storage unavailable"})

    for error_type in ERROR_STATUS:
        app.add_exception_handler(error_type, domain_error_handler)
    app.add_exception_handler(StorageError, storage_error_handler)


def create_app(settings: Settings | None = None, context: AppContext | None = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Configuration; defaults to the injected context's settings
            or the environment
        context: Pre-opened application context. When given, the app does
            not open or close it.

    Returns:
        Configured FastAPI app
    """
    if settings is None:
        settings = context.settings if context is not None else Settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if context is not None:
            yield
            return

        logger.info("Opening application context...")
        app.state.context = await AppContext.open(settings)
        try:
            yield
        finally:
            logger.info("Shutting down application context")
            await app.state.context.close()
            app.state.context = None

    app = FastAPI(
        title="Social Graph Service",
        version=__version__,
        description="Users, friendships and popularity graph",
        lifespan=lifespan,
    )
    app.state.context = context

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.http.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["*"],
    )

    _register_exception_handlers(app)

    app.include_router(users.router, prefix=API_PREFIX)
    app.include_router(graph.router, prefix=API_PREFIX)

    @app.get("/", response_class=PlainTextResponse, include_in_schema=False)
    async def root() -> str:
        return "API is running..."

    @app.get(f"{API_PREFIX}/health", response_model=HealthResult, tags=["health"])
    async def health(ctx: AppContext = Depends(get_context)) -> HealthResult:
        """Storage reachability, cache state and broadcaster counters."""
        result = HealthResult(
            storage_type=getattr(ctx.storage, "mode", type(ctx.storage).__name__),
            cache_enabled=ctx.cache_enabled,
            broadcaster=ctx.broadcaster.get_stats(),
        )
        try:
            result.total_users = await ctx.storage.count_users()
        except Exception as e:
            logger.warning(f"Health check could not reach storage: {e}")
            result.healthy = False
            result.error = str(e)
        return result

    return app
