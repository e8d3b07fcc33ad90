import logging
from textwrap import dedent

import pydantic
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.routing import APIRoute

from share_api.adapters.index import DisplayNameIndex
from share_api.adapters.storage import LocalStorage
from share_api.broadcaster import EventBroadcaster
from share_api.config.settings import Settings
from share_api.errors import (
    FileNotFound,
    InvalidKey,
    StorageWriteError,
    handle_broad_exceptions,
    handle_file_not_found,
    handle_invalid_key,
    handle_pydantic_validation_errors,
    handle_request_validation_errors,
    handle_storage_write_error,
)
from share_api.gateway import SessionGateway
from share_api.logging_config import setup_logging
from share_api.registry import FileRegistry
from share_api.routers.events import router as events_router
from share_api.routers.files import router as files_router
from share_api.routers.health import router as health_router

# Set up logging
logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create a FastAPI application."""
    settings = settings or Settings()

    app = FastAPI(
        title="Share API",
        summary="Share files across the local network",
        version="v1",
        description=dedent(
            """\
        Upload files from any browser on the network, list and download them,
        and follow additions and deletions live over the `/ws` channel.

        | Event | Payload |
        | --- | --- |
        | `newFile` | the stored `FileRecord` |
        | `fileDeleted` | the removed `storageKey` |
        """
        ),
        docs_url="/docs",
        generate_unique_id_function=custom_generate_unique_id,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    storage = LocalStorage(settings.upload_path)
    storage.ensure_root()
    index = DisplayNameIndex(settings.upload_path / settings.index_filename)
    index.load()
    registry = FileRegistry(storage, index)
    registry.reconcile()
    broadcaster = EventBroadcaster(queue_size=settings.session_queue_size)

    app.state.settings = settings
    app.state.storage = storage
    app.state.registry = registry
    app.state.broadcaster = broadcaster
    app.state.gateway = SessionGateway(registry, broadcaster)

    app.include_router(files_router, tags=["files"])
    app.include_router(events_router, tags=["events"])
    app.include_router(health_router, tags=["health"])

    app.add_exception_handler(InvalidKey, handle_invalid_key)
    app.add_exception_handler(FileNotFound, handle_file_not_found)
    app.add_exception_handler(StorageWriteError, handle_storage_write_error)
    app.add_exception_handler(RequestValidationError, handle_request_validation_errors)
    app.add_exception_handler(
        exc_class_or_status_code=pydantic.ValidationError,
        handler=handle_pydantic_validation_errors,
    )
    app.middleware("http")(handle_broad_exceptions)

    @app.on_event("shutdown")
    async def close_sessions():
        logger.info("Shutting down, closing %d session(s)", broadcaster.session_count)
        broadcaster.close_all()

    logger.info("Sharing files from %s", settings.upload_path)
    return app


def custom_generate_unique_id(route: APIRoute):
    """
    Generate prettier `operationId`s in the OpenAPI schema.

    These become the function names in generated client SDKs.
    """
    return f"{route.tags[0]}-{route.name}"


if __name__ == "__main__":
    import uvicorn

    settings = Settings()
    setup_logging(settings.log_level)
    app = create_app(settings)
    uvicorn.run(app, host=settings.host, port=settings.port)
