import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from scanner_adapter.api.middleware import log_request
from scanner_adapter.api.responses import adapter_error_handler
from scanner_adapter.config import BuildInfo, Config, load_config, get_build_info
from scanner_adapter.enqueuer import CeleryEnqueuer, Enqueuer
from scanner_adapter.exceptions import AdapterError
from scanner_adapter.routes.metadata import router as metadata_router
from scanner_adapter.routes.probe import router as probe_router
from scanner_adapter.routes.scan import router as scan_router
from scanner_adapter.store import RedisStore, Store
from scanner_adapter.trivy.wrapper import TrivyWrapper, Wrapper

logger = logging.getLogger(__name__)


def setup_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    )


def get_metrics() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


def create_app(build_info: BuildInfo, config: Config, enqueuer: Enqueuer, store: Store, wrapper: Wrapper, lifespan=None) -> FastAPI:
    """
    Build the API application around the given collaborators.

    Args:
        build_info: Version, commit and build date echoed by the metadata endpoint
        config: Adapter configuration
        enqueuer: Creates scan jobs for accepted scan requests
        store: Looks up scan jobs for report polls
        wrapper: Reports the Trivy engine and database versions
        lifespan: Optional FastAPI lifespan handler
    """
    app = FastAPI(title="Trivy Scanner Adapter API", version=build_info.version, lifespan=lifespan)

    app.state.build_info = build_info
    app.state.config = config
    app.state.enqueuer = enqueuer
    app.state.store = store
    app.state.wrapper = wrapper

    app.add_exception_handler(AdapterError, adapter_error_handler)
    app.middleware("http")(log_request)

    app.include_router(scan_router)
    app.include_router(metadata_router)
    app.include_router(probe_router)

    if config.api.metrics_enabled:
        app.add_api_route("/metrics", get_metrics, methods=["GET"])

    return app


def create_default_app() -> FastAPI:
    """Wire the Redis store, the Celery enqueuer and the Trivy CLI from the environment."""
    config = load_config()
    setup_logging(config.log_level)

    # Imported here so that building an app with other collaborators does not need a broker
    from scanner_adapter.tasks.tasks import scan_task

    store = RedisStore.from_config(config.redis_store)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"Starting scanner adapter on {config.api.addr}")
        yield
        await store.close()

    return create_app(
        build_info=get_build_info(),
        config=config,
        enqueuer=CeleryEnqueuer(store, scan_task),
        store=store,
        wrapper=TrivyWrapper(config.trivy),
        lifespan=lifespan,
    )


def run() -> None:
    config = load_config()
    uvicorn.run(
        "scanner_adapter.main:create_default_app",
        factory=True,
        host=config.api.host,
        port=config.api.port,
        log_level=config.log_level.lower(),
    )


if __name__ == "__main__":
    run()
