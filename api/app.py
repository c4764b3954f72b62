from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from know.enrichment import EnrichmentRuntime

from api.dependencies import get_config, get_default_runtime
from api.routes.admin import router as admin_router
from api.routes.articles import router as articles_router
from api.routes.search import router as search_router
from api.routes.tags import router as tags_router


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def create_app(runtime: Optional[EnrichmentRuntime] = None) -> FastAPI:
    """
    Build the API around an enrichment runtime. Without one, the runtime is
    built lazily from the environment when the app starts.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if app.state.runtime is None:
            setup_logging(get_config().log_level)
            app.state.runtime = get_default_runtime()
        await app.state.runtime.start()
        try:
            yield
        finally:
            await app.state.runtime.stop()

    app = FastAPI(title="Know API", version="0.1.0", lifespan=lifespan)
    app.state.runtime = runtime
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(articles_router)
    app.include_router(search_router)
    app.include_router(tags_router)
    app.include_router(admin_router)

    @app.get("/healthz")
    def health(request: Request) -> dict:
        current = request.app.state.runtime
        return {
            "status": "ok",
            "vector_index": current.vector_index.enabled,
            "tag_cache": current.tag_cache.initialized,
            "workers": current.pool.stats(),
            "queued": current.queue.qsize(),
        }

    return app


app = create_app()
