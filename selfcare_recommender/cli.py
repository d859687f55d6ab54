"""
Self-care recommender — CLI entry point.

All commands follow this pattern:
  1. Load ``AppConfig`` via ``load_config()``.
  2. Configure logging.
  3. Validate inputs.
  4. Execute action (DB init, seed import, generation, interaction, ...).
  5. Report result to stdout; engine errors go to stderr with exit code 1.

Install and run::

    pip install -e .
    selfcare-recommender --help
    selfcare-recommender init-db
    selfcare-recommender import-partners --file config/seed/partners.json
    selfcare-recommender import-analyses --file config/seed/analyses.json
    selfcare-recommender generate demo-user
    selfcare-recommender list demo-user --status ACTIVE
    selfcare-recommender interact 3 view
    selfcare-recommender serve --port 8000
"""

from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import NoReturn, Optional

import typer

app = typer.Typer(
    name="selfcare-recommender",
    help="Self-care recommender — lab analyses to ranked next-step recommendations.",
    add_completion=False,
)


# ── Helpers ───────────────────────────────────────────────────────────────────

def _load_config_or_exit(config_path: Optional[str] = None):
    """Load AppConfig, printing a friendly error and exiting on failure."""
    from selfcare_recommender.config import load_config

    try:
        cfg_path = Path(config_path) if config_path else None
        return load_config(cfg_path)
    except FileNotFoundError as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)
    except Exception as exc:
        typer.echo(f"[ERROR] Config validation failed: {exc}", err=True)
        raise typer.Exit(code=1)


def _configure_logging(config):
    """Set up logging from config."""
    from selfcare_recommender.utils.logging import configure_logging
    configure_logging(config.logging)


@contextmanager
def _connect(config, db_path: Optional[str] = None, initialize: bool = True):
    """Open the configured database, bringing its schema up to date first.

    ``init-db`` passes ``initialize=False`` to report the migration count itself.
    """
    from selfcare_recommender.db.connection import initialize_database, open_database

    with open_database(config.database, db_path) as conn:
        if initialize:
            initialize_database(conn)
        yield conn


def _fail(message: str) -> NoReturn:
    typer.echo(f"[ERROR] {message}", err=True)
    raise typer.Exit(code=1)


def _echo_recommendation(rec, verbose: bool = False) -> None:
    partner = rec.partner_entity_id if rec.partner_entity_id is not None else "-"
    typer.echo(
        f"  #{rec.rec_id:<5} p{rec.priority} {rec.status.value:<9} "
        f"{rec.type.value:<10} {rec.title} (partner {partner})"
    )
    if verbose:
        typer.echo(f"         reason:  {rec.reason}")
        typer.echo(f"         expires: {rec.expires_at.isoformat() if rec.expires_at else '-'}")


_DB_PATH_OPTION = typer.Option(None, "--db-path", help="Override DB path from config.")
_CONFIG_OPTION = typer.Option(None, "--config", help="Path to TOML config file.")


# ── Setup commands ────────────────────────────────────────────────────────────

@app.command("init-db")
def init_db(
    db_path: Optional[str] = _DB_PATH_OPTION,
    config_path: Optional[str] = _CONFIG_OPTION,
) -> None:
    """Initialize the SQLite database and apply the full schema.

    Safe to run multiple times — all DDL uses IF NOT EXISTS.
    Also runs pending schema migrations.
    """
    from selfcare_recommender.db.connection import initialize_database
    from selfcare_recommender.db.schema import ALL_TABLE_NAMES

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    target_path = db_path or config.database.db_path
    typer.echo(f"Initializing database at: {target_path}")

    with _connect(config, target_path, initialize=False) as conn:
        migrations_applied = initialize_database(conn)

    typer.echo(f"  Tables: {len(ALL_TABLE_NAMES)} created/verified.")
    typer.echo(f"  Migrations applied: {migrations_applied}")
    typer.echo("[OK] Database ready.")


@app.command("validate-config")
def validate_config(
    config_path: Optional[str] = typer.Option(
        None,
        "--config",
        help="Path to TOML config file (default: config/default.toml).",
    ),
    show_full: bool = typer.Option(
        False,
        "--full",
        help="Print full config including all fields.",
    ),
) -> None:
    """Validate the configuration file and print parsed values.

    Exits with code 1 if the config fails validation.
    """
    config = _load_config_or_exit(config_path)

    typer.echo("Configuration validated successfully.")
    typer.echo("")
    typer.echo(f"  Database path:      {config.database.db_path}")
    typer.echo(f"  Recent analyses:    {config.engine.recent_analysis_limit}")
    typer.echo(f"  Expiry (days):      {config.engine.expiry_days}")
    typer.echo(f"  Workup threshold:   {config.engine.multiple_abnormal_threshold}")
    typer.echo(f"  API bind:           {config.api.host}:{config.api.port}")
    typer.echo(f"  Log level:          {config.logging.level}")
    typer.echo(f"  Debug mode:         {config.debug}")

    if show_full:
        typer.echo("")
        typer.echo("Full config (JSON):")
        typer.echo(json.dumps(config.model_dump(), indent=2, default=str))

    typer.echo("")
    typer.echo("[OK] Config valid.")


def _import_seed(
    kind: str,
    seed_file: str,
    config_path: Optional[str],
    dry_run: bool,
    db_path: Optional[str] = None,
) -> None:
    from selfcare_recommender.ingestion.seed_loader import (
        SeedFileError,
        insert_analyses,
        insert_partners,
        load_analysis_file,
        load_partner_file,
    )

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    path = Path(seed_file)
    if not path.exists():
        _fail(f"{kind.capitalize()} file not found: {path}")

    typer.echo(f"Loading {kind} from: {path}")
    loader = load_partner_file if kind == "partners" else load_analysis_file
    try:
        validated, errors = loader(path)
    except SeedFileError as exc:
        _fail(str(exc))

    if errors:
        typer.echo(f"[ERROR] {len(errors)} record(s) failed validation:", err=True)
        for idx, msg in errors[:5]:
            typer.echo(f"  Record #{idx}: {msg}", err=True)
        if len(errors) > 5:
            typer.echo(f"  ... and {len(errors) - 5} more.", err=True)
        raise typer.Exit(code=1)

    typer.echo(f"  Validated {len(validated)} record(s).")
    if dry_run:
        typer.echo(f"[DRY RUN] No {kind} written to database.")
        return

    try:
        with _connect(config, db_path) as conn:
            inserted = (
                insert_partners(conn, validated)
                if kind == "partners"
                else insert_analyses(conn, validated)
            )
    except sqlite3.IntegrityError as exc:
        _fail(f"Import rejected by database (already imported?): {exc}")
    except sqlite3.Error as exc:
        _fail(f"Database error: {exc}")

    typer.echo(f"  Inserted {inserted} record(s).")
    typer.echo(f"[OK] {kind.capitalize()} imported.")


@app.command("import-partners")
def import_partners(
    seed_file: str = typer.Option(
        "config/seed/partners.json", "--file", "-f", help="Partners JSON array."
    ),
    config_path: Optional[str] = _CONFIG_OPTION,
    dry_run: bool = typer.Option(
        False, "--dry-run", help="Validate partners but do not write to the database."
    ),
    db_path: Optional[str] = _DB_PATH_OPTION,
) -> None:
    """Import partner directory records from a JSON file."""
    _import_seed("partners", seed_file, config_path, dry_run, db_path)


@app.command("import-analyses")
def import_analyses(
    seed_file: str = typer.Option(
        "config/seed/analyses.json", "--file", "-f", help="Analyses JSON array."
    ),
    config_path: Optional[str] = _CONFIG_OPTION,
    dry_run: bool = typer.Option(
        False, "--dry-run", help="Validate analyses but do not write to the database."
    ),
    db_path: Optional[str] = _DB_PATH_OPTION,
) -> None:
    """Import lab analyses from a JSON file."""
    _import_seed("analyses", seed_file, config_path, dry_run, db_path)


# ── Engine commands ───────────────────────────────────────────────────────────

@app.command("generate")
def generate(
    user_id: str = typer.Argument(..., help="User to generate recommendations for."),
    analysis_id: Optional[int] = typer.Option(
        None, "--analysis-id", "-a", help="Evaluate only this analysis."
    ),
    city: Optional[str] = typer.Option(
        None, "--city", help="Prefer partners located in this city."
    ),
    db_path: Optional[str] = _DB_PATH_OPTION,
    config_path: Optional[str] = _CONFIG_OPTION,
) -> None:
    """Evaluate the user's abnormal analyses and store new recommendations."""
    import asyncio

    from selfcare_recommender.errors import RecommendationEngineError
    from selfcare_recommender.recommendations.service import (
        RecommendationService,
        build_partner_lookup,
    )

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    try:
        with _connect(config, db_path) as conn:
            service = RecommendationService(
                conn, config, partners=build_partner_lookup(conn, config, city=city)
            )
            result = asyncio.run(service.generate(user_id, analysis_id))
    except RecommendationEngineError as exc:
        _fail(str(exc))
    except sqlite3.Error as exc:
        _fail(f"Database error: {exc}")

    run = result.run
    typer.echo(f"Run {run.run_slug}")
    typer.echo(f"  Analyses evaluated: {run.analyses_evaluated}")
    typer.echo(f"  Drafts generated:   {run.drafts_generated}")
    typer.echo(f"  Created:            {run.recommendations_created}")
    for rec in result.recommendations:
        _echo_recommendation(rec)
    typer.echo("[OK] Generation complete.")


@app.command("list")
def list_recommendations(
    user_id: str = typer.Argument(..., help="Owner of the recommendations."),
    rec_type: Optional[str] = typer.Option(None, "--type", "-t", help="e.g. CLINIC, PHARMACY."),
    status: str = typer.Option("ACTIVE", "--status", "-s", help="Lifecycle status, or ALL."),
    limit: Optional[int] = typer.Option(None, "--limit", "-n", help="Maximum rows."),
    include_expired: bool = typer.Option(False, "--include-expired", help="Show expired rows too."),
    db_path: Optional[str] = _DB_PATH_OPTION,
    config_path: Optional[str] = _CONFIG_OPTION,
) -> None:
    """List a user's recommendations, highest priority first."""
    from selfcare_recommender.recommendations.service import RecommendationService
    from selfcare_recommender.taxonomy.recommendation_taxonomy import (
        RecommendationStatus,
        RecommendationType,
    )

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    try:
        type_filter = RecommendationType(rec_type.upper()) if rec_type else None
        status_filter = None if status.upper() == "ALL" else RecommendationStatus(status.upper())
    except ValueError as exc:
        _fail(str(exc))

    try:
        with _connect(config, db_path) as conn:
            recs = RecommendationService(conn, config).list(
                user_id,
                type=type_filter,
                status=status_filter,
                limit=limit,
                include_expired=include_expired,
            )
    except sqlite3.Error as exc:
        _fail(f"Database error: {exc}")

    typer.echo(f"{len(recs)} recommendation(s) for {user_id}:")
    for rec in recs:
        _echo_recommendation(rec)


@app.command("show")
def show(
    rec_id: int = typer.Argument(..., help="Recommendation id."),
    user_id: Optional[str] = typer.Option(None, "--user", "-u", help="Require this owner."),
    db_path: Optional[str] = _DB_PATH_OPTION,
    config_path: Optional[str] = _CONFIG_OPTION,
) -> None:
    """Show one recommendation with its metadata and interaction log."""
    from selfcare_recommender.errors import RecommendationEngineError
    from selfcare_recommender.recommendations.service import RecommendationService

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    try:
        with _connect(config, db_path) as conn:
            service = RecommendationService(conn, config)
            rec = service.get(rec_id, user_id)
            events = service.list_interactions(rec_id)
    except RecommendationEngineError as exc:
        _fail(str(exc))
    except sqlite3.Error as exc:
        _fail(f"Database error: {exc}")

    _echo_recommendation(rec, verbose=True)
    typer.echo(f"         {rec.description}")
    if rec.metadata:
        typer.echo(json.dumps(rec.metadata, indent=2, ensure_ascii=False))
    typer.echo(f"  Interactions: {len(events)}")
    for event in events:
        stamp = event.created_at.isoformat() if event.created_at else "-"
        typer.echo(f"    {stamp}  {event.action.value}")


@app.command("interact")
def interact(
    rec_id: int = typer.Argument(..., help="Recommendation id."),
    action: str = typer.Argument(..., help="view | click | purchase | dismiss"),
    user_id: Optional[str] = typer.Option(None, "--user", "-u", help="Require this owner."),
    metadata: Optional[str] = typer.Option(None, "--metadata", help="JSON object stored on the event."),
    db_path: Optional[str] = _DB_PATH_OPTION,
    config_path: Optional[str] = _CONFIG_OPTION,
) -> None:
    """Record a user action and print the resulting status."""
    from selfcare_recommender.errors import RecommendationEngineError
    from selfcare_recommender.recommendations.service import RecommendationService
    from selfcare_recommender.taxonomy.recommendation_taxonomy import InteractionAction

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    try:
        parsed_action = InteractionAction(action.lower())
    except ValueError:
        _fail(f"Unknown action '{action}'. Valid: {[a.value for a in InteractionAction]}")

    payload = None
    if metadata:
        try:
            payload = json.loads(metadata)
        except json.JSONDecodeError as exc:
            _fail(f"--metadata is not valid JSON: {exc}")
        if not isinstance(payload, dict):
            _fail("--metadata must be a JSON object.")

    try:
        with _connect(config, db_path) as conn:
            status = RecommendationService(conn, config).interact(
                rec_id, parsed_action, metadata=payload, user_id=user_id
            )
    except RecommendationEngineError as exc:
        _fail(str(exc))
    except sqlite3.Error as exc:
        _fail(f"Database error: {exc}")

    typer.echo(f"[OK] Recommendation {rec_id} is now {status.value}.")


@app.command("cleanup-duplicates")
def cleanup_duplicates(
    user_id: Optional[str] = typer.Option(None, "--user", "-u", help="Limit to one user."),
    db_path: Optional[str] = _DB_PATH_OPTION,
    config_path: Optional[str] = _CONFIG_OPTION,
) -> None:
    """Delete older duplicate recommendations that have no interaction history."""
    from selfcare_recommender.recommendations.service import RecommendationService

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    try:
        with _connect(config, db_path) as conn:
            deleted = RecommendationService(conn, config).cleanup_duplicates(user_id)
    except sqlite3.Error as exc:
        _fail(f"Database error: {exc}")

    typer.echo(f"[OK] Removed {deleted} duplicate recommendation(s).")


@app.command("serve")
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Override api.host."),
    port: Optional[int] = typer.Option(None, "--port", help="Override api.port."),
    config_path: Optional[str] = _CONFIG_OPTION,
) -> None:
    """Run the HTTP API with uvicorn."""
    import uvicorn

    from selfcare_recommender.api.app import create_app

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    bind_host = host or config.api.host
    bind_port = port or config.api.port
    typer.echo(f"Serving on http://{bind_host}:{bind_port}")
    uvicorn.run(create_app(config), host=bind_host, port=bind_port, log_config=None)


if __name__ == "__main__":
    app()
