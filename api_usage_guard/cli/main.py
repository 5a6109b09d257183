"""
CLI interface for API Usage Guard.

Provides command-line access to integrations, usage, alerts and accounts.
"""

import sys
from typing import Optional

import typer
import yaml
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from api_usage_guard.api.handlers import Response
from api_usage_guard.app import Application, build_application
from api_usage_guard.config.loader import StorageBackend, load_app_config
from api_usage_guard.core.alerts import compute_totals
from api_usage_guard.logging_setup import configure_logging
from api_usage_guard.storage.models import UsageEntry
from api_usage_guard.storage.repository import initialize_schema

app = typer.Typer()
console = Console()

EXIT_CODE_OK = 0
EXIT_CODE_FAIL = 1

ConfigOption = typer.Option(
    None,
    "--config",
    "-c",
    help="Path to YAML configuration file"
)
TokenOption = typer.Option(
    None,
    "--token",
    "-t",
    help="Access token, required when tenancy is multi"
)


def _load_application(config_path: Optional[str]) -> Application:
    try:
        config = load_app_config(config_path)
    except (FileNotFoundError, ValueError, yaml.YAMLError) as e:
        console.print(f"[red]Error loading configuration:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    configure_logging(config.logging.level)
    if config.storage.backend == StorageBackend.MEMORY:
        console.print("[yellow]Note:[/] in-memory storage does not persist between commands")
    return build_application(config)


def _authorization(token: Optional[str]) -> Optional[str]:
    return f"Bearer {token}" if token else None


def _check(response: Response) -> None:
    """Exit with failure for any non-success response."""
    if not response.ok:
        message = response.body.get("message", "") if isinstance(response.body, dict) else ""
        console.print(f"[red]Error ({response.status}):[/] {escape(message)}")
        sys.exit(EXIT_CODE_FAIL)


def _mask(api_key: str) -> str:
    """Show only the last four characters of an API key."""
    if len(api_key) <= 4:
        return "****"
    return "****" + api_key[-4:]


def _format_amount(amount: float) -> str:
    return f"{amount:,.2f}"


@app.callback(invoke_without_command=True)
def main(ctx: typer.Context):
    """API Usage Guard CLI."""
    if ctx.invoked_subcommand is None:
        console.print("API Usage Guard - Use --help to see available commands")


@app.command()
def init(config: Optional[str] = ConfigOption):
    """Initialize the API Usage Guard database."""
    try:
        app_config = load_app_config(config)
        initialize_schema(app_config.storage.db_path)
        console.print(f"[green]✓[/] Database initialized at {app_config.storage.db_path}")
        sys.exit(EXIT_CODE_OK)
    except Exception as e:
        console.print(f"[red]Error initializing database:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)


@app.command()
def status(config: Optional[str] = ConfigOption):
    """Show the active configuration."""
    try:
        app_config = load_app_config(config)
    except (FileNotFoundError, ValueError, yaml.YAMLError) as e:
        console.print(f"[red]Error loading configuration:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    console.print("[green]✓[/] API Usage Guard configuration is valid")
    console.print(f"Storage: {app_config.storage.backend.value}")
    if app_config.storage.backend == StorageBackend.SQLITE:
        console.print(f"Database: {app_config.storage.db_path}")
    console.print(f"Tenancy: {app_config.tenancy.value}")
    if app_config.auth.uses_dev_secrets:
        console.print("[yellow]Warning:[/] development token secrets in use")


@app.command("add-integration")
def add_integration(
    name: str = typer.Option(..., "--name", "-n", help="Display name"),
    integration_type: str = typer.Option(..., "--type", help="Provider type, e.g. openai"),
    api_key: str = typer.Option(..., "--api-key", help="API key of the integration"),
    token: Optional[str] = TokenOption,
    config: Optional[str] = ConfigOption,
):
    """Register a new integration."""
    application = _load_application(config)
    response = application.handler.create_integration(
        {"name": name, "type": integration_type, "apiKey": api_key},
        authorization=_authorization(token),
    )
    _check(response)
    console.print(f"[green]✓[/] Integration created: {response.body['id']}")


@app.command("list-integrations")
def list_integrations(
    token: Optional[str] = TokenOption,
    config: Optional[str] = ConfigOption,
):
    """List integrations of the current owner."""
    application = _load_application(config)
    response = application.handler.list_integrations(authorization=_authorization(token))
    _check(response)

    if not response.body:
        console.print("[dim]No integrations registered.[/]")
        return

    table = Table(title="Integrations")
    table.add_column("ID")
    table.add_column("Name")
    table.add_column("Type")
    table.add_column("API key")
    for integration in response.body:
        table.add_row(
            integration["id"],
            integration["name"],
            integration["type"],
            _mask(integration["apiKey"]),
        )
    console.print(table)


@app.command("record-usage")
def record_usage(
    integration_id: str = typer.Argument(..., help="Integration to record against"),
    date: str = typer.Option(..., "--date", "-d", help="Date in YYYY-MM-DD form"),
    usage: float = typer.Option(..., "--usage", "-u", help="Usage amount"),
    cost: float = typer.Option(..., "--cost", help="Cost amount"),
    config: Optional[str] = ConfigOption,
):
    """Record a usage entry and evaluate alerts."""
    application = _load_application(config)
    already_triggered = {
        alert.id for alert in application.alert_engine.list_alerts(integration_id) if alert.triggered
    }
    response = application.handler.record_usage(
        integration_id, {"date": date, "usage": usage, "cost": cost}
    )
    _check(response)
    console.print(f"[green]✓[/] {response.body['message']}")

    newly_triggered = [
        alert for alert in application.alert_engine.list_alerts(integration_id)
        if alert.triggered and alert.id not in already_triggered
    ]
    for alert in newly_triggered:
        console.print(
            f"[bold red]Alert {alert.id} triggered[/] "
            f"({alert.type.value} >= {_format_amount(alert.threshold)})"
        )


@app.command("show-usage")
def show_usage(
    integration_id: str = typer.Argument(..., help="Integration to show"),
    start: Optional[str] = typer.Option(None, "--start", help="First date to include"),
    end: Optional[str] = typer.Option(None, "--end", help="Last date to include"),
    config: Optional[str] = ConfigOption,
):
    """Show recorded usage, optionally limited to a date range."""
    if (start is None) != (end is None):
        console.print("[red]Error:[/] --start and --end must be given together")
        sys.exit(EXIT_CODE_FAIL)

    application = _load_application(config)
    if start is not None:
        response = application.handler.get_usage_range(integration_id, {"start": start, "end": end})
    else:
        response = application.handler.get_usage(integration_id)
    _check(response)

    if not response.body:
        console.print("\n[bold yellow]No usage recorded[/]")
        return

    table = Table(title=f"Usage for {integration_id}")
    # positions are only meaningful for the unfiltered sequence
    show_positions = start is None
    if show_positions:
        table.add_column("#", justify="right")
    table.add_column("Date")
    table.add_column("Usage", justify="right")
    table.add_column("Cost", justify="right")
    for index, entry in enumerate(response.body):
        row = [entry["date"], _format_amount(entry["usage"]), _format_amount(entry["cost"])]
        if show_positions:
            row.insert(0, str(index))
        table.add_row(*row)
    console.print(table)

    totals = compute_totals(UsageEntry(**entry) for entry in response.body)
    console.print(f"Total usage: {_format_amount(totals.usage)}")
    console.print(f"Total cost: ${_format_amount(totals.cost)}")


@app.command("add-alert")
def add_alert(
    integration_id: str = typer.Argument(..., help="Integration to watch"),
    threshold: float = typer.Option(..., "--threshold", help="Threshold on the cumulative total"),
    metric: str = typer.Option("cost", "--type", help="Metric: cost or usage"),
    notify: str = typer.Option("email", "--notify", help="Notification method: email or slack"),
    config: Optional[str] = ConfigOption,
):
    """Create a threshold alert."""
    application = _load_application(config)
    response = application.handler.create_alert({
        "integrationId": integration_id,
        "threshold": threshold,
        "type": metric,
        "notificationMethod": notify,
    })
    _check(response)
    console.print(f"[green]✓[/] Alert created: {response.body['id']}")


@app.command("show-alert")
def show_alert(
    alert_id: str = typer.Argument(..., help="Alert to show"),
    config: Optional[str] = ConfigOption,
):
    """Show an alert and whether it has triggered."""
    application = _load_application(config)
    response = application.handler.get_alert(alert_id)
    _check(response)

    alert = response.body
    state = "[bold red]TRIGGERED[/]" if alert["triggered"] else "[green]armed[/]"
    console.print(f"\n[bold]Alert:[/bold] {alert['id']}")
    console.print(f"Integration: {alert['integrationId']}")
    console.print(f"Rule: {alert['type']} >= {_format_amount(alert['threshold'])}")
    console.print(f"Notify via: {alert['notificationMethod']}")
    console.print(f"State: {state}")


@app.command("add-user")
def add_user(
    name: str = typer.Option(..., "--name", "-n", help="Display name"),
    email: str = typer.Option(..., "--email", "-e", help="Login email"),
    password: str = typer.Option(..., "--password", prompt=True, hide_input=True, confirmation_prompt=True),
    config: Optional[str] = ConfigOption,
):
    """Create a user account."""
    application = _load_application(config)
    response = application.handler.create_user({"name": name, "email": email, "password": password})
    _check(response)
    console.print(f"[green]✓[/] User created: {response.body['id']}")


@app.command()
def login(
    email: str = typer.Option(..., "--email", "-e", help="Login email"),
    password: str = typer.Option(..., "--password", prompt=True, hide_input=True),
    config: Optional[str] = ConfigOption,
):
    """Exchange credentials for access and refresh tokens."""
    application = _load_application(config)
    response = application.handler.login({"email": email, "password": password})
    _check(response)
    console.print(f"Access token: {response.body['token']}")
    console.print(f"Refresh token: {response.body['refreshToken']}")


if __name__ == "__main__":
    app()
