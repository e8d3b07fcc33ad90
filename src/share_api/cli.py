# cli.py
import json
import logging

import click

from share_api.adapters.index import DisplayNameIndex
from share_api.adapters.storage import LocalStorage
from share_api.config.settings import get_settings
from share_api.logging_config import setup_logging
from share_api.registry import FileRegistry

# Configure logging
logger = logging.getLogger(__name__)


@click.group()
def cli():
    """CLI commands for running and maintaining the share server"""
    pass


@cli.command()
@click.option("--host", default=None, help="Interface to bind (overrides HOST)")
@click.option("--port", type=click.IntRange(1, 65535), default=None, help="Port to listen on (overrides PORT)")
@click.option("--reload", is_flag=True, default=False, help="Reload on code changes (development only)")
def serve(host, port, reload):
    """Run the share server"""
    import uvicorn

    settings = get_settings()
    setup_logging(settings.log_level)
    host = host or settings.host
    port = port or settings.port
    logger.info("Starting %s on http://%s:%d", settings.app_name, host, port)
    uvicorn.run(
        "share_api.main:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        log_level=settings.log_level.lower(),
    )


@cli.command()
def show_config():
    """Show current configuration"""
    settings = get_settings()

    print("Current Configuration:")
    print(f"  App Name: {settings.app_name}")
    print(f"  Listen: {settings.host}:{settings.port}")
    print(f"  Upload Directory: {settings.upload_path}")
    print(f"  Display Name Index: {settings.upload_path / settings.index_filename}")
    print(f"  Session Queue Size: {settings.session_queue_size}")
    print(f"  CORS Origins: {', '.join(settings.cors_origins)}")
    print(f"  Log Level: {settings.log_level}")


@cli.command()
def reconcile():
    """Prune stale display names and leftovers from interrupted uploads"""
    settings = get_settings()
    setup_logging(settings.log_level)

    storage = LocalStorage(settings.upload_path)
    index = DisplayNameIndex(settings.upload_path / settings.index_filename)
    index.load()
    summary = FileRegistry(storage, index).reconcile()
    print(json.dumps(summary, indent=2))


if __name__ == "__main__":
    cli()
