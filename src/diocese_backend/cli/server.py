import click
import uvicorn

from diocese_backend.settings import settings

@click.command()
@click.option("--host", "host", default="0.0.0.0", show_default=True)
@click.option("--port", "port", type=int, default=8000, show_default=True)
def serve(host, port):
    """Run the API server."""

    development = settings.DEBUG_MODE != "production"

    uvicorn.run(
        "diocese_backend.server:app",
        host=host,
        port=port,
        log_level="debug" if development else "info",
        reload=development,
        workers=1
    )
