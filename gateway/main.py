from contextlib import asynccontextmanager
from logging import getLogger
import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi_offline import FastAPIOffline
from gateway.middleware.requestlogger import RequestLogger
from gateway.adapters.upstream import RemoteExecutor, upstream_executor
from gateway.cache.response_cache import ResponseCache, build_store
from gateway.schema.registry import SchemaRegistry
from gateway.schema.refresher import SchemaRefresher
from gateway.services.execution import GraphQLGateway
from gateway.routers.application import router
from gateway.config.general import general
from gateway.config.upstream import upstream

logger = getLogger(__name__)


def create_app(
    executor: RemoteExecutor | None = None,
    registry: SchemaRegistry | None = None,
    cache: ResponseCache | None = None,
    refresh_interval: float | None = None,
) -> FastAPI:
    executor = executor if executor is not None else upstream_executor
    registry = registry if registry is not None else SchemaRegistry()
    cache = (
        cache
        if cache is not None
        else ResponseCache(
            build_store(ttl=upstream.CACHE_TTL, max_entries=upstream.CACHE_MAX_ENTRIES)
        )
    )
    refresher = SchemaRefresher(
        registry,
        executor,
        interval=refresh_interval or upstream.SCHEMA_REFRESH_INTERVAL,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Nothing listens until the first introspection succeeded
        if not registry.loaded:
            try:
                await registry.initialize(executor)
            except Exception:
                logger.critical(
                    "could not load the upstream schema",
                    exc_info=True,
                    extra={"event": "startup-error", "upstream": executor.url},
                )
                await executor.aclose()
                raise
        refresher.start()
        logger.info(
            "Server is running on http://%s:%s%s",
            general.HOST,
            general.PORT,
            general.GRAPHQL_PATH,
            extra={"event": "server-started"},
        )
        try:
            yield
        finally:
            await refresher.stop()
            await executor.aclose()
            logger.info("Server stopped", extra={"event": "server-stopped"})

    app = FastAPIOffline(
        title=general.PROJECT_NAME,
        version=general.API_VERSION,
        root_path=general.MOUNT_PATH,
        lifespan=lifespan,
    )
    app.state.gateway = GraphQLGateway(
        registry=registry,
        executor=executor,
        cache=cache,
        cache_anonymous=upstream.CACHE_ANONYMOUS,
    )
    app.state.refresher = refresher

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLogger)
    app.include_router(router)
    return app


app = create_app()


def run():
    # uvicorn owns SIGINT/SIGTERM: it closes the listener, then runs the lifespan shutdown
    uvicorn.run(app, host=general.HOST, port=general.PORT, log_config=None)


if __name__ == "__main__":
    run()
