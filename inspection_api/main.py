from __future__ import annotations

import json
import sys
from typing import Optional

import typer
import uvicorn

from inspection_api.config import get_settings
from inspection_api.infrastructure import PoolManager, ensure_schema, get_sync_connection
from inspection_api.reporter import print_reports
from inspection_api.repositories import ReportRepository
from inspection_api.utils.logging import configure_logging

app = typer.Typer(help="Inspection API CLI.")


def _mask(value: Optional[str]) -> str:
    return "***" if value else "-"


@app.command()
def info() -> None:
    """
    Show effective configuration values (secrets masked).
    """
    settings = get_settings()
    db = (
        "DATABASE_URL"
        if settings.database_url
        else f"{settings.db_user}@{settings.db_host}:{settings.db_port}/{settings.db_name}"
    )
    typer.echo(
        f"DB={db} | pool={settings.db_pool_min_size}..{settings.db_pool_max_size} "
        f"statement_timeout={settings.db_statement_timeout_ms}ms"
    )
    typer.echo(
        f"HTTP={settings.host}:{settings.port} env={settings.app_env} "
        f"cors={settings.cors_origins}"
    )
    typer.echo(
        f"Cloudinary cloud={settings.cloudinary_cloud_name or '-'} "
        f"key={_mask(settings.cloudinary_api_key)} url={_mask(settings.cloudinary_url)} "
        f"folder={settings.cloudinary_folder}"
    )


@app.command("init-db")
def init_db() -> None:
    """
    Create tables and indexes (safe to run repeatedly).
    """
    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=settings.log_json)
    with get_sync_connection(settings) as conn:
        ensure_schema(conn)
    typer.echo("Schema ready.")


@app.command("check-db")
def check_db() -> None:
    """
    Connect once and print the server time.
    """
    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=settings.log_json)
    with get_sync_connection(settings) as conn:
        with conn.cursor() as cur:
            cur.execute("SELECT now()")
            row = cur.fetchone()
    typer.echo(f"Connected. Server time: {row[0].isoformat()}")


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address (default from settings)."),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Port (default from settings)."),
    reload: bool = typer.Option(False, "--reload", help="Reload on code changes (development)."),
) -> None:
    """
    Run the HTTP API with uvicorn.
    """
    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=settings.log_json)
    uvicorn.run(
        "inspection_api.api.app:create_app",
        factory=True,
        host=host or settings.host,
        port=port or settings.port,
        reload=reload,
        log_config=None,
    )


@app.command()
def seed() -> None:
    """
    Insert one sample report (type=test).
    """
    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=settings.log_json)
    manager = PoolManager(settings)
    try:
        repo = ReportRepository(manager.get_pool(), settings)
        report = repo.create("test", {"message": "Hello from seed"}, owner="Test User")
    finally:
        manager.close()
    typer.echo(json.dumps(report.model_dump(mode="json"), indent=2))


@app.command()
def reports(
    kind: Optional[str] = typer.Option(None, "--type", "-t", help="Only reports of this type."),
    limit: int = typer.Option(20, "--limit", "-n", help="Maximum rows (clamped to the API limit)."),
) -> None:
    """
    List recent reports as a table.
    """
    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=settings.log_json)
    manager = PoolManager(settings)
    try:
        rows = ReportRepository(manager.get_pool(), settings).list_reports(
            kind=kind, limit=limit, lite=True
        )
    finally:
        manager.close()
    print_reports(rows, kind=kind)


def main() -> None:
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)


if __name__ == "__main__":
    main()
