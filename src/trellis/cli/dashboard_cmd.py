"""``trellis dashboard`` command."""

from __future__ import annotations

import errno
import socket

import click

from trellis.cli.helpers import output_error, output_result, require_root
from trellis.cli.main import cli
from trellis.storage.runtime import RuntimeOpenError, read_config

_DEFAULT_PORT = 8799


def _find_free_port(host: str, near: int) -> int | None:
    """Return an available port close to *near*, or ``None`` on failure."""
    for candidate in range(near + 1, near + 20):
        try:
            with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
                s.bind((host, candidate))
                return candidate
        except OSError:
            continue
    return None


@cli.command("dashboard")
@click.option("--host", default="127.0.0.1", help="Host to bind to.")
@click.option(
    "--port",
    default=None,
    type=int,
    help="Port to bind to. Defaults to dashboard_port in config, or 8799.",
)
def dashboard_cmd(host: str, port: int | None) -> None:
    """Serve the board JSON API over HTTP until interrupted."""
    trellis_dir = require_root()

    try:
        config = read_config(trellis_dir)
    except (OSError, ValueError) as exc:
        output_error(f"Cannot open Trellis project: {exc}", "CONFIG_ERROR")
    if port is None:
        port = config.get("dashboard_port", _DEFAULT_PORT)

    from trellis.dashboard.server import create_server

    try:
        server = create_server(trellis_dir, host, port)
    except RuntimeOpenError as exc:
        output_error(str(exc), "CONFIG_ERROR")
    except OSError as exc:
        if exc.errno == errno.EADDRINUSE:
            alt = _find_free_port(host, port)
            output_error(
                f"Port {port} is already in use.",
                "PORT_IN_USE",
                {"port": port, "suggested_port": alt},
            )
        output_error(str(exc), "BIND_ERROR", {"port": port})

    output_result({"host": host, "port": port, "url": f"http://{host}:{port}/"})
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        pass
    finally:
        server.server_close()
