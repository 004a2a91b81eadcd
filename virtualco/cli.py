import click


@click.group()
def main() -> None:
    """VirtualCo - multi-agent company runtime."""


@main.command()
@click.option("--host", default=None, help="Bind host (default: from VIRTUALCO_HOST or 127.0.0.1).")
@click.option("--port", default=None, type=int, help="Bind port (default: from VIRTUALCO_PORT or 8000).")
@click.option("--reload", is_flag=True, default=False, help="Enable auto-reload for development.")
def serve(host: str | None, port: int | None, reload: bool) -> None:
    """Start the Company Runtime server."""
    import uvicorn

    from virtualco.company_runtime.settings import VirtualCoSettings

    settings = VirtualCoSettings()

    uvicorn.run(
        "virtualco.company_runtime.app:app",
        host=host or settings.host,
        port=port or settings.port,
        reload=reload,
        log_level="warning",  # uvicorn's own logging is intercepted by loguru
        # Drain timeout plus a buffer for the final snapshot flush.
        timeout_graceful_shutdown=settings.graceful_shutdown_timeout + 30,
    )


# ---------------------------------------------------------------------------
# Offline store commands
#
# These open the snapshot directly.  Do not run them against a store that a
# live server is writing to: the server's next flush overwrites the change.
# ---------------------------------------------------------------------------


def _open_company():
    """Open the configured store and wrap it in a runtime with no running agents."""
    from virtualco.company_runtime.log import setup_logging
    from virtualco.company_runtime.runtime import create_snapshot_backend
    from virtualco.company_runtime.settings import VirtualCoSettings
    from virtualco.company_runtime.store.company import open_store

    settings = VirtualCoSettings()
    setup_logging(settings.log_level, settings.log_json)
    return settings, open_store(
        create_snapshot_backend(settings),
        flush_delay=settings.flush_delay,
        default_model=settings.default_model,
    )


@main.command()
def workspaces() -> None:
    """List stored workspaces."""
    settings, store_cm = _open_company()
    with store_cm as store:
        items = sorted(store.list_workspaces(), key=lambda w: w.created_at, reverse=True)
        if not items:
            click.echo("No workspaces.")
            return
        for workspace in items:
            agents = len(store.list_agents_by_workspace(workspace.id))
            click.echo(
                f"{workspace.id}  {workspace.status:<8}  {workspace.created_at:%Y-%m-%d %H:%M}  "
                f"{workspace.name} ({agents} agents)"
            )


@main.command()
@click.argument("workspace_id")
def org(workspace_id: str) -> None:
    """Print the org chart of a workspace."""
    from virtualco.company_runtime.managers.company import WorkspaceNotFoundError, render_org_chart
    from virtualco.company_runtime.runtime import CompanyRuntime

    settings, store_cm = _open_company()
    with store_cm as store:
        runtime = CompanyRuntime(settings, store)
        try:
            nodes = runtime.company.org_chart(workspace_id)
        except WorkspaceNotFoundError:
            raise click.ClickException(f"Workspace '{workspace_id}' not found.") from None
        click.echo(render_org_chart(nodes))


@main.command()
@click.argument("workspace_id")
def archive(workspace_id: str) -> None:
    """Archive a workspace so it is not resumed."""
    from virtualco.company_runtime.managers.company import WorkspaceNotFoundError
    from virtualco.company_runtime.runtime import CompanyRuntime

    settings, store_cm = _open_company()
    with store_cm as store:
        runtime = CompanyRuntime(settings, store)
        try:
            workspace = runtime.company.shutdown(workspace_id)
        except WorkspaceNotFoundError:
            raise click.ClickException(f"Workspace '{workspace_id}' not found.") from None
        click.echo(f"Workspace '{workspace.name}' archived.")


@main.command("check-command")
@click.argument("command")
def check_command(command: str) -> None:
    """Run the bash tool's safety filter against COMMAND."""
    from virtualco.company_runtime.execution.safety import check_command_safety

    reason = check_command_safety(command)
    if reason is None:
        click.echo("allowed")
        return
    click.echo(f"blocked: {reason}")
    raise SystemExit(1)


if __name__ == "__main__":
    main()
