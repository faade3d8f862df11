"""Main entry point for the quotaguard application.

Sets up the Typer CLI application, performs dependency injection (Composition Root),
defines CLI commands, and delegates execution to the CommandHandler.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

import typer
from typing_extensions import Annotated

from quotaguard.core.command_handler import CommandHandler, SimulatedUpstream
from quotaguard.core.services.vendor_contact_service import VendorContactService
from quotaguard.domain.models.common import RetryPolicy
from quotaguard.infrastructure.cli.display import ConsoleDisplay
from quotaguard.infrastructure.config.settings import (
    get_config,
    get_places_api_key,
    get_queue_settings,
    get_retry_policy,
    load_configuration,
)
from quotaguard.infrastructure.monitoring.logger_setup import level_from_name, setup_logging
from quotaguard.infrastructure.places.places_client import PlacesClient
from quotaguard.infrastructure.resilience.request_queue import SerialRequestQueue

logger = logging.getLogger(__name__)


# --- Dependency Injection Container (Manual) ---

def create_dependencies() -> Dict[str, Any]:
    """Creates and wires up all dependencies for the application.

    This acts as the Composition Root.
    """
    load_configuration()
    setup_logging(
        log_level=level_from_name(get_config('logging.level', 'WARNING')),
        log_file=get_config('logging.file'),
    )

    ui = ConsoleDisplay()
    retry_policy = get_retry_policy()
    queue_settings = get_queue_settings()
    api_key = get_places_api_key()

    vendor_service_factory = None
    if api_key:
        def vendor_service_factory() -> VendorContactService:
            queue = SerialRequestQueue(
                PlacesClient(api_key=api_key),
                retry_policy=retry_policy,
                name="places",
                **queue_settings,
            )
            return VendorContactService(queue)
    else:
        logger.debug("Google Places API key not found, vendor command disabled.")

    handler = CommandHandler(
        ui=ui,
        retry_policy=retry_policy,
        queue_settings=queue_settings,
        vendor_service_factory=vendor_service_factory,
    )
    logger.debug("Application dependencies initialized.")
    return {'ui': ui, 'command_handler': handler}


_dependencies: Dict[str, Any] = {}


def get_handler() -> CommandHandler:
    if 'command_handler' not in _dependencies:
        _dependencies.update(create_dependencies())
    return _dependencies['command_handler']


app = typer.Typer(
    name="quotaguard",
    help="quotaguard: retry, classify and pace calls to rate-limited upstream APIs.",
    add_completion=False,
)

# --- CLI Commands ---

@app.command()
def classify(
    status: Annotated[Optional[int], typer.Option("--status", "-s", help="HTTP status code returned by the upstream.")] = None,
    message: Annotated[str, typer.Option("--message", "-m", help="Error message text.")] = "",
    retry_after: Annotated[Optional[str], typer.Option("--retry-after", help="Retry-After header value in seconds.")] = None,
):
    """Classify an upstream error into a retry category."""
    get_handler().handle_classify(status, message, retry_after)


@app.command()
def schedule(
    max_retries: Annotated[int, typer.Option(help="Retries after the first attempt.")] = 5,
    base_delay_ms: Annotated[int, typer.Option(help="Initial backoff unit in ms.")] = 1000,
    max_delay_ms: Annotated[int, typer.Option(help="Backoff ceiling in ms.")] = 30000,
    jitter: Annotated[bool, typer.Option("--jitter/--no-jitter", help="Add up to 1s random delay.")] = False,
):
    """Print the backoff delay for each retry."""
    try:
        policy = RetryPolicy(max_retries, base_delay_ms, max_delay_ms, jitter)
    except ValueError as e:
        get_handler().ui.display_error(str(e))
        raise typer.Exit(code=2)
    get_handler().handle_schedule(policy)


@app.command()
def simulate(
    keys: Annotated[List[str], typer.Argument(help="Keys to enqueue, in order.")],
    fail_first: Annotated[int, typer.Option(help="Failures per key before the upstream succeeds.")] = 0,
    status: Annotated[int, typer.Option(help="Status code of the simulated failures.")] = 429,
    max_retries: Annotated[int, typer.Option(help="Retries after the first attempt.")] = 3,
    base_delay_ms: Annotated[int, typer.Option(help="Initial backoff unit in ms.")] = 50,
    min_interval_ms: Annotated[int, typer.Option(help="Minimum spacing between dispatches in ms.")] = 100,
):
    """Run keys through a queue backed by a simulated flaky upstream."""
    handler = get_handler()
    policy = RetryPolicy(max_retries=max_retries, base_delay_ms=base_delay_ms,
                         max_delay_ms=max(base_delay_ms, 30000), jitter=False)
    upstream = SimulatedUpstream(fail_first=fail_first, status=status)
    asyncio.run(handler.handle_simulate(keys, upstream, policy=policy, min_interval_ms=min_interval_ms))


@app.command()
def vendor(
    place_ids: Annotated[List[str], typer.Argument(help="Google place ids to look up.")],
):
    """Look up vendor contact details through the Places queue."""
    ok = asyncio.run(get_handler().handle_vendor(place_ids))
    if not ok:
        raise typer.Exit(code=1)


# --- Main Execution Guard ---

def cli_entry_point():
    """Function to be called by the script entry point in pyproject.toml."""
    app()

if __name__ == "__main__":
    cli_entry_point()
