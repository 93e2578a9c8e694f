from __future__ import annotations

import logging

import typer
import uvicorn

from botfleet.logging_utils import configure_logging
from botfleet.sessions import SessionRegistry
from botfleet.settings import Settings
from botfleet.web import create_app

app = typer.Typer(no_args_is_help=True, add_completion=False)
logger = logging.getLogger("botfleet")


@app.command()
def serve(
    host: str | None = typer.Option(None, help="Override: bind address."),
    port: int | None = typer.Option(None, help="Override: bind port."),
) -> None:
    """
    Run the control plane HTTP and WebSocket server.
    """
    settings = Settings()
    configure_logging(settings.log_level)
    uvicorn.run(
        create_app(settings),
        host=host or settings.host,
        port=port or settings.port,
        log_config=None,
    )


@app.command()
def clear_data(
    yes: bool = typer.Option(False, "--yes", help="Skip the confirmation prompt."),
) -> None:
    """
    Delete every tenant directory under the data root.
    """
    settings = Settings()
    configure_logging(settings.log_level)
    if not yes:
        typer.confirm(f"Delete everything under {settings.data_dir}?", abort=True)
    registry = SessionRegistry(root=settings.data_dir)
    registry.clear_all()
    typer.echo(f"Cleared {settings.data_dir}")


@app.command()
def show_config() -> None:
    settings = Settings()
    configure_logging(settings.log_level)
    logger.info("loaded_config", extra={"path": str(settings.data_dir)})
    typer.echo(settings.model_dump(mode="json"))


if __name__ == "__main__":
    app()
