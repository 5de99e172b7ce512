"""mnemo CLI: review, inspect and schedule flashcards from the terminal."""

import asyncio
import json
import logging
import sys
from collections.abc import Coroutine
from pathlib import Path
from typing import Annotated, Any, TypeVar

import typer
from pydantic import TypeAdapter, ValidationError

from mnemo.application.config import AppConfig, resolve_config
from mnemo.application.factory import get_progress_service
from mnemo.application.progress_service import ProgressService
from mnemo.application.stats.metrics_calculator import MetricsCalculator
from mnemo.application.utils.common import round_half_up
from mnemo.application.utils.text import rating_name
from mnemo.domain.errors import InvalidRatingError, MnemoError
from mnemo.domain.progress.models import CardState

T = TypeVar("T")

# ---------------------------------------------------------------------------
# Root app
# ---------------------------------------------------------------------------

app = typer.Typer(
    help="mnemo: spaced-repetition scheduling for flashcards (FSRS + legacy SM-2).",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

config_app = typer.Typer(help="Manage mnemo configuration.")
app.add_typer(config_app, name="config")

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(levelname)s:%(name)s:%(message)s",
    stream=sys.stderr,
)
logger = logging.getLogger(__name__)

_ANY = TypeAdapter(Any)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _config(ctx: typer.Context) -> AppConfig:
    try:
        return resolve_config(ctx.obj or {})
    except ValidationError as e:
        typer.secho(f"Invalid configuration: {e}", fg="red", err=True)
        raise typer.Exit(2) from e


def _service(ctx: typer.Context) -> ProgressService:
    return get_progress_service(_config(ctx))


def _run(coro: Coroutine[Any, Any, T]) -> T:
    """Run a service call, turning domain errors into exit codes."""
    try:
        return asyncio.run(coro)
    except InvalidRatingError as e:
        typer.secho(str(e), fg="red", err=True)
        raise typer.Exit(2) from e
    except MnemoError as e:
        typer.secho(str(e), fg="red", err=True)
        raise typer.Exit(1) from e


def _echo_json(obj: Any) -> None:
    typer.echo(_ANY.dump_json(obj, indent=2).decode())


def _echo_card(state: CardState) -> None:
    due = state.next_review_date.isoformat() if state.next_review_date else "-"
    typer.echo(f"{state.user_id}/{state.flashcard_id} [{state.algorithm.value}] {state.state.value}")
    typer.echo(f"  due: {due}  interval: {state.interval}d  reviews: {state.total_reviews}")
    if state.is_suspended:
        typer.secho("  suspended", fg="yellow")


UserArg = Annotated[str, typer.Argument(help="User ID.")]
CardArg = Annotated[str, typer.Argument(help="Flashcard ID.")]
JsonOpt = Annotated[bool, typer.Option("--json", help="Output as JSON.")]


# ---------------------------------------------------------------------------
# Global callback
# ---------------------------------------------------------------------------


@app.callback()
def main_callback(
    ctx: typer.Context,
    backend: Annotated[str | None, typer.Option(help="Progress store: json, memory.")] = None,
    store_path: Annotated[
        Path | None, typer.Option("--store-path", help="JSON progress file.")
    ] = None,
    verbose: Annotated[
        int,
        typer.Option(
            "--verbose", "-v", count=True, help="Increase verbosity. Repeat for more detail."
        ),
    ] = 1,
):
    """Global settings for mnemo."""
    ctx.ensure_object(dict)
    ctx.obj.update(backend=backend, store_path=store_path, verbose=verbose)
    if verbose >= 2:
        logging.getLogger("mnemo").setLevel(logging.DEBUG)


# ---------------------------------------------------------------------------
# Review commands
# ---------------------------------------------------------------------------


@app.command()
def review(
    ctx: typer.Context,
    user_id: UserArg,
    flashcard_id: CardArg,
    rating: Annotated[
        int, typer.Argument(help="1 (Again), 2 (Hard), 3 (Good), 4 (Easy); 0-5 with --legacy.")
    ],
    legacy: Annotated[
        bool, typer.Option("--legacy", "-l", help="Treat RATING as an SM-2 quality (0-5).")
    ] = False,
    response_time_ms: Annotated[
        int | None, typer.Option("--response-time-ms", help="Time taken to answer.")
    ] = None,
    json_output: JsonOpt = False,
):
    """[bold green]Review[/bold green] a card and store its next schedule."""
    service = _service(ctx)
    state = _run(
        service.process_review(
            user_id,
            flashcard_id,
            rating,
            response_time_ms=response_time_ms,
            is_legacy_input=legacy,
        )
    )
    if json_output:
        _echo_json(state)
        return
    label = f"quality {rating}" if legacy else rating_name(rating)
    typer.secho(f"Recorded {label}.", fg="green")
    _echo_card(state)


@app.command()
def preview(
    ctx: typer.Context,
    user_id: UserArg,
    flashcard_id: CardArg,
    json_output: JsonOpt = False,
):
    """Show what each rating would schedule, without reviewing."""
    options = _run(_service(ctx).get_scheduling_preview(user_id, flashcard_id))
    if json_output:
        _echo_json({rating.name.lower(): option for rating, option in options.items()})
        return
    for rating, option in options.items():
        typer.echo(f"{rating_name(rating):>6}  {option.interval:>6}  due {option.due.isoformat()}")


@app.command()
def retrievability(ctx: typer.Context, user_id: UserArg, flashcard_id: CardArg):
    """Current probability of recall."""
    value = _run(_service(ctx).get_retrievability(user_id, flashcard_id))
    typer.echo(f"{value:.4f} ({round_half_up(value * 100)}%)")


@app.command()
def metrics(
    ctx: typer.Context,
    user_id: UserArg,
    flashcard_id: CardArg,
):
    """Derived metrics for one card (accuracy, lapse rate, volatility)."""
    service = _service(ctx)
    state = _run(service.get_card(user_id, flashcard_id))
    _echo_json(MetricsCalculator(service.selector).enrich(state))


# ---------------------------------------------------------------------------
# Card management
# ---------------------------------------------------------------------------


@app.command()
def migrate(ctx: typer.Context, user_id: UserArg, flashcard_id: CardArg):
    """Move a legacy SM-2 card onto FSRS."""
    state = _run(_service(ctx).migrate_to_fsrs(user_id, flashcard_id))
    typer.secho(
        f"FSRS: difficulty={state.difficulty:g} stability={state.stability:g}", fg="green"
    )


@app.command()
def suspend(ctx: typer.Context, user_id: UserArg, flashcard_id: CardArg):
    """Stop showing a card."""
    _echo_card(_run(_service(ctx).suspend_card(user_id, flashcard_id)))


@app.command()
def unsuspend(ctx: typer.Context, user_id: UserArg, flashcard_id: CardArg):
    """Show a suspended card again."""
    _echo_card(_run(_service(ctx).unsuspend_card(user_id, flashcard_id)))


@app.command()
def reset(
    ctx: typer.Context,
    user_id: UserArg,
    flashcard_id: CardArg,
    force: Annotated[
        bool, typer.Option("--force", "-f", help="Bypass confirmation.")
    ] = False,
):
    """Put a card back to New. Its review history is kept."""
    if not force and not typer.confirm(f"Reset {user_id}/{flashcard_id}?"):
        raise typer.Abort()
    _echo_card(_run(_service(ctx).reset_card(user_id, flashcard_id)))


@app.command()
def init(
    ctx: typer.Context,
    user_id: UserArg,
    flashcard_ids: Annotated[list[str], typer.Argument(help="Flashcard IDs to track.")],
):
    """Start tracking flashcards for a user (existing progress is untouched)."""
    created = _run(_service(ctx).initialize_for_flashcards(user_id, flashcard_ids))
    typer.echo(f"Initialized {created} of {len(flashcard_ids)} cards.")


# ---------------------------------------------------------------------------
# Study queries
# ---------------------------------------------------------------------------


@app.command()
def due(
    ctx: typer.Context,
    user_id: UserArg,
    limit: Annotated[int, typer.Option(help="Maximum cards to list.")] = 20,
    json_output: JsonOpt = False,
):
    """List cards due now, earliest first."""
    cards = _run(_service(ctx).get_due_cards(user_id, limit))
    if json_output:
        _echo_json(cards)
        return
    if not cards:
        typer.secho("No cards due.", fg="yellow")
        return
    for state in cards:
        typer.echo(f"{state.flashcard_id}  {state.state.value}  {state.next_review_date.isoformat()}")


@app.command()
def queue(
    ctx: typer.Context,
    user_id: UserArg,
    new_limit: Annotated[int, typer.Option(help="Maximum new cards.")] = 10,
    review_limit: Annotated[int, typer.Option(help="Maximum due cards.")] = 20,
    learning_first: Annotated[
        bool, typer.Option("--learning-first/--review-first", help="Order of the session.")
    ] = True,
):
    """Build a study session from learning, due and new cards."""
    result = _run(
        _service(ctx).get_study_queue(
            user_id,
            new_limit=new_limit,
            review_limit=review_limit,
            learning_first=learning_first,
        )
    )
    typer.echo(
        f"Learning: {result.learning_count}  Due: {result.review_count}  New: {result.new_count}"
    )
    for state in result.cards:
        typer.echo(f"  {state.flashcard_id}  {state.state.value}")


@app.command()
def stats(ctx: typer.Context, user_id: UserArg, json_output: JsonOpt = False):
    """Study statistics for a user."""
    result = _run(_service(ctx).get_user_stats(user_id))
    if json_output:
        _echo_json(result)
        return
    typer.echo(f"Cards: {result.total_cards}  Due: {result.due_count}")
    typer.echo(
        f"Today: {result.reviews_today} reviews, {result.correct_today} correct, "
        f"avg rating {result.avg_rating_today:.2f}"
    )
    for state, count in sorted(result.state_distribution.items()):
        typer.echo(f"  {state}: {count}")


@app.command()
def forecast(
    ctx: typer.Context,
    user_id: UserArg,
    days: Annotated[int, typer.Option(help="Number of days to forecast.")] = 7,
):
    """Cards falling due on each upcoming day."""
    for day in _run(_service(ctx).get_daily_forecast(user_id, days)):
        typer.echo(f"{day.date.isoformat()}  {day.count}")


# ---------------------------------------------------------------------------
# Server
# ---------------------------------------------------------------------------


@app.command()
def serve(
    port: Annotated[int, typer.Option(help="Port to bind the server to.")] = 8777,
    host: Annotated[str, typer.Option(help="Host to bind the server to.")] = "127.0.0.1",
    reload: Annotated[bool, typer.Option(help="Enable auto-reload.")] = False,
):
    """Start the HTTP API."""
    import uvicorn

    typer.secho(f"Starting mnemo server on {host}:{port}...", fg="green")
    uvicorn.run("mnemo.server:app", host=host, port=port, reload=reload)


# ---------------------------------------------------------------------------
# Config subgroup
# ---------------------------------------------------------------------------


@config_app.command("show")
def config_show(ctx: typer.Context):
    """Display final resolved configuration."""
    config = _config(ctx)
    d = {k: str(v) if isinstance(v, Path) else v for k, v in config.model_dump().items()}
    typer.echo(json.dumps(d, indent=2))
