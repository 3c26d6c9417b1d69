"""CLI interface for reader-sync using Typer."""

import json
from pathlib import Path
from typing import Optional

import typer
import yaml
from typing_extensions import Annotated

from . import __version__
from .config import load_config
from .core.source import UpdateFlags
from .main import ReaderSyncApp
from .utils.paths import get_project_dir


app = typer.Typer(
    name="reader-sync",
    help="Synchronize local feed subscriptions with an InoReader account",
    add_completion=False,
)

ConfigOption = Annotated[Optional[Path], typer.Option("--config", "-c", help="Path to config file")]
AccountOption = Annotated[Optional[str], typer.Option("--account", "-a", help="Account name")]


def _run_edit(config_file: Optional[Path], account: Optional[str], queue_edit) -> None:
    """Queue an edit on one source, send it right away and save the state."""
    try:
        app_instance = ReaderSyncApp(config_file)
        source = app_instance.get_source(account)
        queue_edit(source)
        app_instance.run_pending()
    except Exception as e:
        typer.echo(f"✗ Error: {e}", err=True)
        raise typer.Exit(1)

    if source.auth.migrated:
        typer.echo(f"… {source.name} is being migrated, edit ignored")
        return

    remaining = len(source.actions)
    if remaining:
        typer.echo(f"… {remaining} edit(s) still queued (login state: {source.login_state.value})")
    else:
        typer.echo("✓ Done")


@app.command()
def run(
    once: Annotated[bool, typer.Option("--once", help="Run one full update and exit")] = False,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Show detailed output")] = False,
    config_file: ConfigOption = None,
) -> None:
    """Run the synchronization loop."""
    try:
        app_instance = ReaderSyncApp(config_file)
        exit_code = app_instance.run(once=once, verbose=verbose)
    except Exception as e:
        typer.echo(f"✗ Error: {e}", err=True)
        raise typer.Exit(1)
    raise typer.Exit(exit_code)


@app.command()
def login(
    only_login: Annotated[bool, typer.Option("--only-login", help="Do not update after logging in")] = False,
    only_list: Annotated[bool, typer.Option("--only-list", help="Update the subscription list only")] = False,
    account: AccountOption = None,
    config_file: ConfigOption = None,
) -> None:
    """Log in manually, also after repeated failures."""
    flags = UpdateFlags.NONE
    if only_login:
        flags |= UpdateFlags.ONLY_LOGIN
    if only_list:
        flags |= UpdateFlags.ONLY_LIST

    try:
        app_instance = ReaderSyncApp(config_file)
        source = app_instance.get_source(account)
        source.login(flags)
        app_instance.run_pending()
    except Exception as e:
        typer.echo(f"✗ Error: {e}", err=True)
        raise typer.Exit(1)

    state = source.login_state.value
    if state == "active":
        typer.echo(f"✓ Logged in ({source.name})")
    else:
        typer.echo(f"✗ Login failed ({source.name}, state {state})", err=True)
        raise typer.Exit(1)


@app.command()
def subscribe(
    url: Annotated[str, typer.Argument(help="Feed URL")],
    account: AccountOption = None,
    config_file: ConfigOption = None,
) -> None:
    """Subscribe to a feed."""
    _run_edit(config_file, account, lambda source: source.enqueue_subscribe(url))


@app.command()
def unsubscribe(
    url: Annotated[str, typer.Argument(help="Feed URL")],
    account: AccountOption = None,
    config_file: ConfigOption = None,
) -> None:
    """Unsubscribe from a feed."""
    _run_edit(config_file, account, lambda source: source.enqueue_unsubscribe(url))


@app.command()
def tag(
    item_id: Annotated[str, typer.Argument(help="Item id as given by the service")],
    feed_url: Annotated[str, typer.Argument(help="URL of the feed holding the item")],
    add: Annotated[Optional[str], typer.Option("--add", help="Tag to add")] = None,
    remove: Annotated[Optional[str], typer.Option("--remove", help="Tag to remove")] = None,
    link: Annotated[bool, typer.Option("--link", help="Item is a link, not a feed item")] = False,
    account: AccountOption = None,
    config_file: ConfigOption = None,
) -> None:
    """Add and/or remove a tag on an item."""
    if not add and not remove:
        typer.echo("✗ Pass --add and/or --remove", err=True)
        raise typer.Exit(1)
    _run_edit(
        config_file,
        account,
        lambda source: source.enqueue_tag_edit(item_id, feed_url, add_tag=add, remove_tag=remove, link=link),
    )


@app.command()
def status(config_file: ConfigOption = None) -> None:
    """Show version and account status."""
    typer.echo(f"reader-sync v{__version__}")
    typer.echo(f"Data Directory: {get_project_dir()}")

    try:
        app_instance = ReaderSyncApp(config_file)
        info_data = app_instance.get_info()
    except Exception as e:
        typer.echo(f"Warning: Could not load application info: {e}")
        return

    typer.echo(f"  Log level: {info_data.get('log_level', 'N/A')}")
    typer.echo(f"  Enabled accounts: {info_data.get('enabled_accounts', 0)}")
    typer.echo(f"  Poll interval: {info_data.get('poll_interval', 'N/A')} seconds")

    for name in app_instance.sources:
        typer.echo(f"\n{name}:")
        typer.echo(json.dumps(info_data[f"{name}_status"], indent=2))


@app.command()
def config(
    show: Annotated[bool, typer.Option("--show", help="Show current config")] = False,
    example: Annotated[bool, typer.Option("--example", help="Generate example config")] = False,
) -> None:
    """Manage reader-sync configuration."""
    if example:
        from .config import create_example_config
        typer.echo(create_example_config())
    elif show:
        try:
            config_obj = load_config()
            data = config_obj.model_dump()
            for account in data.get("accounts", []):
                if account.get("password"):
                    account["password"] = "***"
            typer.echo(yaml.dump(data, default_flow_style=False, indent=2))
        except Exception as e:
            typer.echo(f"✗ Error loading config: {e}", err=True)
            raise typer.Exit(1)
    else:
        typer.echo("Use --show to view config or --example to generate example")


if __name__ == "__main__":
    app()
