"""Lazarus CLI bootstrap."""

from __future__ import annotations

import typer

from lazarus.builtin import cli


def create_cli_app() -> typer.Typer:
    app = typer.Typer(name="lazarus", help="Resumable sessions on stateless workers", add_completion=False)
    app.command("send")(cli.send)
    app.command("session")(cli.session)
    app.command("snapshot")(cli.snapshot)
    app.command("hooks")(cli.list_hooks)
    return app


app = create_cli_app()

if __name__ == "__main__":
    app()
