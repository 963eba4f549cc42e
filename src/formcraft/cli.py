from __future__ import annotations

import typer

from formcraft.config import Settings, configure_logging
from formcraft.plans import Plan
from formcraft.storage import init_storage

cli = typer.Typer(add_completion=False)


def run_server(host: str | None, port: int | None) -> None:
    import uvicorn

    from formcraft.app import create_app

    settings = Settings()
    resolved_host = host or settings.host
    resolved_port = port if port is not None else settings.port
    uvicorn.run(create_app(settings), host=resolved_host, port=resolved_port)


@cli.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    host: str | None = typer.Option(None, help="Address to bind"),
    port: int | None = typer.Option(None, help="Port to bind"),
) -> None:
    ctx.obj = {"host": host, "port": port}
    if ctx.invoked_subcommand is None:
        run_server(host, port)


@cli.command()
def run(
    ctx: typer.Context,
    host: str | None = typer.Option(None, help="Address to bind"),
    port: int | None = typer.Option(None, help="Port to bind"),
) -> None:
    base = ctx.obj or {}
    resolved_host = host or base.get("host")
    resolved_port = port if port is not None else base.get("port")
    run_server(resolved_host, resolved_port)


@cli.command("set-plan")
def set_plan(
    user_id: str = typer.Argument(..., help="Owner id as issued by the credential service"),
    plan: str = typer.Argument(..., help="free or pro"),
    email: str | None = typer.Option(None, help="Owner email for notifications"),
) -> None:
    """Record a plan change reported by the billing provider."""
    try:
        resolved = Plan(plan.strip().lower())
    except ValueError:
        raise typer.BadParameter(f"unknown plan: {plan}") from None
    settings = Settings()
    configure_logging(settings)
    storage = init_storage(settings)
    try:
        if email:
            storage.users.ensure_user(user_id, email)
        user = storage.users.set_plan(user_id, resolved.value)
    finally:
        storage.close()
    typer.echo(f"{user['id']}: {user['plan']}")


if __name__ == "__main__":
    cli()
