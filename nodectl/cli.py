import logging
import sys

import typer

from nodectl.commands import node
from nodectl.config import Config
from nodectl.logging import setup_logger
from nodectl.modules.powershell import PowerShellResolver

app = typer.Typer(help="nodectl - add nodes to running Kubernetes clusters.")

# Global debug flag
debug_mode = False


def setup_logging(debug: bool = False) -> logging.Logger:
    """Configure logging based on debug mode."""
    level = logging.DEBUG if debug else getattr(logging, Config.LOG_LEVEL, logging.INFO)
    logger = setup_logger("nodectl", level)
    # Disable debug logging for noisy libraries
    if not debug:
        logging.getLogger("paramiko").setLevel(logging.WARNING)
        logging.getLogger("urllib3").setLevel(logging.WARNING)
    return logger


app.add_typer(node.app, name="node")


@app.callback()
def main(
    ctx: typer.Context,
    debug: bool = typer.Option(False, "--debug", "-d", help="Enable debug logging"),
):
    """nodectl - add nodes to running Kubernetes clusters."""
    global debug_mode
    debug_mode = debug
    logger = setup_logging(debug)
    if debug:
        logger.debug("Debug mode enabled")
    ctx.obj = {"resolver": PowerShellResolver()}


@app.command("api")
def serve_api(
    host: str = typer.Option("127.0.0.1", help="Address to bind"),
    port: int = typer.Option(8080, help="Port to listen on"),
):
    """Serve the nodectl HTTP API."""
    import uvicorn
    uvicorn.run("nodectl.api.main:app", host=host, port=port)


if __name__ == "__main__":
    try:
        app()
    except Exception as e:
        if debug_mode:
            logging.getLogger("nodectl").exception(f"Unhandled exception: {e}")
        else:
            logging.getLogger("nodectl").error(f"Error: {e}")
        sys.exit(1)
