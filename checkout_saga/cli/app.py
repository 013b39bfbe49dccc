"""
checkout-saga CLI Application - Built with Click.

Commands:
- config show     Print the effective configuration
- demo            Run a checkout scenario against in-memory components
- sagas list      Inspect persisted saga state
- sagas cleanup   Remove old terminal saga state
"""

import asyncio
from datetime import timedelta
from decimal import Decimal

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from checkout_saga import __version__
from checkout_saga.cart.provider import InMemoryCartStore
from checkout_saga.core.config import CheckoutConfig
from checkout_saga.core.exceptions import CheckoutError
from checkout_saga.core.types import CheckoutRequest, CheckoutResponse, SagaState, utcnow
from checkout_saga.events.publisher import InMemoryEventPublisher
from checkout_saga.inventory.ledger import InMemoryInventoryLedger
from checkout_saga.monitoring.logging import configure_logging
from checkout_saga.orders.journal import InMemoryOrderJournal
from checkout_saga.payments.mock import MockPaymentGateway
from checkout_saga.saga.checkout import CheckoutSaga
from checkout_saga.storage.factory import create_state_store
from checkout_saga.storage.memory import InMemorySagaStateStore

console = Console()

SCENARIOS = ("happy", "out-of-stock", "declined", "concurrent")


# ============================================================================
# CLI Group
# ============================================================================


class OrderedGroup(click.Group):
    """Click Group that lists commands in the order they were added."""

    def list_commands(self, ctx):
        return list(self.commands.keys())


@click.group(cls=OrderedGroup)
@click.version_option(version=__version__, prog_name="checkout-saga")
def cli():
    """
    checkout-saga - Checkout orchestration with compensation.

    \b
    Commands:
        config       Inspect configuration
        demo         Run a checkout scenario in memory
        sagas        Inspect and clean up persisted saga state
    """


def _load_config(config_file: str | None) -> CheckoutConfig:
    if config_file:
        return CheckoutConfig.from_file(config_file)
    return CheckoutConfig.from_env()


# ============================================================================
# checkout-saga config
# ============================================================================


@click.group(cls=OrderedGroup)
def config_cmd():
    """Inspect configuration."""


@config_cmd.command("show")
@click.option("--file", "-f", "config_file", type=click.Path(exists=True), help="YAML config file")
def config_show(config_file: str | None):
    """
    Show the effective configuration.

    \b
    Examples:
        checkout-saga config show
        checkout-saga config show --file checkout.yaml
    """
    try:
        config = _load_config(config_file)
    except CheckoutError as e:
        raise click.ClickException(str(e)) from e

    table = Table(title="Checkout configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    for name, value in config.to_dict().items():
        table.add_row(name, str(value))

    console.print(table)


# ============================================================================
# checkout-saga demo
# ============================================================================


def _demo_components(config: CheckoutConfig) -> dict:
    ledger = InMemoryInventoryLedger(
        initial_stock={"SKU-1": 10, "SKU-2": 2, "SKU-3": 25},
        default_ttl=config.reservation_ttl,
    )
    carts = InMemoryCartStore()
    gateway = MockPaymentGateway()
    journal = InMemoryOrderJournal()
    publisher = InMemoryEventPublisher()
    saga = CheckoutSaga(
        ledger,
        gateway,
        journal,
        store=InMemorySagaStateStore(),
        cart_clearer=carts,
        cart_provider=carts,
        publisher=publisher,
        config=config,
    )
    return {
        "ledger": ledger,
        "carts": carts,
        "gateway": gateway,
        "journal": journal,
        "publisher": publisher,
        "saga": saga,
    }


async def _run_demo(scenario: str, config: CheckoutConfig) -> tuple[list, dict]:
    parts = _demo_components(config)
    carts: InMemoryCartStore = parts["carts"]
    saga: CheckoutSaga = parts["saga"]
    outcomes: list[CheckoutResponse | CheckoutError] = []

    if scenario == "out-of-stock":
        carts.add_line("customer-1", "SKU-2", "Desk lamp", Decimal("5.00"), 5)
    else:
        carts.add_line("customer-1", "SKU-1", "Notebook", Decimal("10.00"), 2)

    if scenario == "declined":
        parts["gateway"].decline("Insufficient funds")

    if scenario == "concurrent":
        request = CheckoutRequest(
            customer_id="customer-1",
            cart_snapshot=await carts.get_snapshot("customer-1"),
            payment_token="tok_visa",
            idempotency_key="abc",
        )
        results = await asyncio.gather(
            saga.checkout(request), saga.checkout(request), return_exceptions=True
        )
        for result in results:
            if isinstance(result, BaseException) and not isinstance(result, CheckoutError):
                raise result
            outcomes.append(result)
    else:
        try:
            outcomes.append(await saga.start_checkout("customer-1", "tok_visa"))
        except CheckoutError as e:
            outcomes.append(e)

    return outcomes, parts


def _outcome_row(outcome: CheckoutResponse | CheckoutError) -> tuple[str, ...]:
    if isinstance(outcome, CheckoutError):
        return ("-", "[red]error[/red]", "-", "-", str(outcome))

    color = "green" if outcome.succeeded else "red"
    return (
        outcome.saga_id,
        f"[{color}]{outcome.status.value}[/{color}]",
        outcome.order_id or "-",
        str(outcome.total),
        outcome.reason or "; ".join(outcome.warnings) or "-",
    )


@click.command()
@click.option(
    "--scenario",
    "-s",
    type=click.Choice(SCENARIOS),
    default="happy",
    show_default=True,
    help="Checkout scenario to run",
)
@click.option("-v", "--verbose", is_flag=True, help="Print checkout logs")
def demo_cmd(scenario: str, verbose: bool):
    """
    Run a checkout scenario against in-memory components.

    \b
    Scenarios:
        happy          Stock available, payment approved
        out-of-stock   Requested more than is available
        declined       Payment declined, reservation released
        concurrent     Two requests with the same idempotency key
    """
    if verbose:
        configure_logging(level="INFO", json_format=False)

    config = CheckoutConfig(logging=verbose, metrics=False)
    outcomes, parts = asyncio.run(_run_demo(scenario, config))

    console.print(Panel(f"Scenario: [bold]{scenario}[/bold]", expand=False))

    table = Table(title="Outcome")
    table.add_column("Saga", style="cyan")
    table.add_column("Status")
    table.add_column("Order")
    table.add_column("Total", justify="right")
    table.add_column("Notes")
    for outcome in outcomes:
        table.add_row(*_outcome_row(outcome))
    console.print(table)

    stock = Table(title="Stock")
    stock.add_column("SKU", style="cyan")
    stock.add_column("On hand", justify="right")
    stock.add_column("Held", justify="right")
    stock.add_column("Available", justify="right")
    for sku, level in sorted(parts["ledger"].snapshot().items()):
        stock.add_row(sku, str(level.on_hand), str(level.held), str(level.available))
    console.print(stock)

    events = parts["publisher"].events
    if events:
        console.print("Events: " + ", ".join(event.event_type for event in events))


# ============================================================================
# checkout-saga sagas
# ============================================================================


@click.group(cls=OrderedGroup)
def sagas_cmd():
    """Inspect and clean up persisted saga state."""


async def _list_states(storage: str, reconciliation: bool, limit: int) -> list[SagaState]:
    async with create_state_store(storage) as store:
        if reconciliation:
            return await store.list_requiring_reconciliation()
        return await store.list_states(limit=limit)


@sagas_cmd.command("list")
@click.option("--storage", default=None, help="Storage URL (default: CHECKOUT_STORAGE_URL)")
@click.option("--reconciliation", is_flag=True, help="Only sagas flagged for manual reconciliation")
@click.option("--limit", default=50, show_default=True, help="Maximum rows")
def sagas_list(storage: str | None, reconciliation: bool, limit: int):
    """
    List persisted checkouts.

    \b
    Examples:
        checkout-saga sagas list --storage sqlite:///./data/sagas.db
        checkout-saga sagas list --reconciliation
    """
    url = storage or CheckoutConfig.from_env().storage_url
    try:
        states = asyncio.run(_list_states(url, reconciliation, limit))
    except CheckoutError as e:
        raise click.ClickException(str(e)) from e

    if not states:
        click.echo("No sagas found.")
        return

    table = Table(title=f"Sagas ({url})")
    table.add_column("Saga", style="cyan")
    table.add_column("Customer")
    table.add_column("Step")
    table.add_column("Order")
    table.add_column("Total", justify="right")
    table.add_column("Reconcile")
    table.add_column("Updated")
    for state in states:
        table.add_row(
            state.saga_id,
            state.customer_id,
            state.current_step.value,
            state.order_id or "-",
            str(state.total),
            "[red]yes[/red]" if state.requires_reconciliation else "no",
            state.updated_at.isoformat(timespec="seconds"),
        )
    console.print(table)


async def _cleanup(storage: str, older_than_days: int) -> int:
    async with create_state_store(storage) as store:
        return await store.cleanup_terminal(utcnow() - timedelta(days=older_than_days))


@sagas_cmd.command("cleanup")
@click.option("--storage", default=None, help="Storage URL (default: CHECKOUT_STORAGE_URL)")
@click.option("--older-than-days", default=30, show_default=True, help="Age threshold in days")
def sagas_cleanup(storage: str | None, older_than_days: int):
    """Delete terminal sagas older than the threshold (flagged sagas are kept)."""
    url = storage or CheckoutConfig.from_env().storage_url
    try:
        removed = asyncio.run(_cleanup(url, older_than_days))
    except CheckoutError as e:
        raise click.ClickException(str(e)) from e

    click.echo(f"Removed {removed} saga(s).")


# ============================================================================
# Command Registration
# ============================================================================

cli.add_command(config_cmd, name="config")
cli.add_command(demo_cmd, name="demo")
cli.add_command(sagas_cmd, name="sagas")


if __name__ == "__main__":
    cli()
