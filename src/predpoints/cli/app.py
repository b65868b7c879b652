"""Root CLI app - entry point and command registration."""

from pathlib import Path

import typer

from predpoints.config import get_settings
from predpoints.config.settings import configure_logging

app = typer.Typer(
    name="predpoints",
    help="predpoints - Loyalty points ledger for on-chain prediction market bets and wins.",
    no_args_is_help=True,
)


@app.callback()
def main(
    ctx: typer.Context,
    config_dir: Path | None = typer.Option(
        None, "--config-dir", "-C", help="Config directory (default: ./config or package config)"
    ),
    profile: str | None = typer.Option(
        None, "--profile", "-p", help="Config profile (e.g. dev) to overlay on default.toml"
    ),
) -> None:
    """Configure logging and store options in context."""
    settings = get_settings(profile, config_dir)
    configure_logging(settings)
    ctx.obj = {"settings": settings, "config_dir": config_dir, "profile": profile}


# Subcommands, in the order an operator reaches for them
from predpoints.cli import listener, points, cursor, ledger  # noqa: E402, I001

for _name, _sub in (
    ("listener", listener.app),
    ("points", points.app),
    ("cursor", cursor.app),
    ("ledger", ledger.app),
):
    app.add_typer(_sub, name=_name)


def run() -> None:
    app()


if __name__ == "__main__":
    run()
