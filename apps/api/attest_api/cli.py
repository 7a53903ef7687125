"""CLI commands for the attested PDF intake API."""

import io
import sys

import click

from attest_api.db.schema import ensure_schema, schema_ready
from attest_api.db.session import SessionLocal, engine
from attest_api.dependencies import get_tenant_directory
from attest_api.errors import AttestError
from attest_api.ledger.export import export_filename, export_rows, write_csv
from attest_api.ledger.filters import build_filter
from attest_api.ledger.service import AttestationLedger
from attest_api.models import ATTESTATION_TABLE
from attest_api.settings import get_settings


@click.group()
def cli():
    """Attested PDF intake CLI."""
    pass


@cli.command("ensure-schema")
def ensure_schema_command():
    """Create or additively migrate the ledger table."""
    try:
        created = ensure_schema(engine)
    except AttestError as e:
        click.echo(f"✗ Schema setup failed: {e.message}", err=True)
        sys.exit(1)
    if created:
        click.echo(f"✓ Created table {ATTESTATION_TABLE}.")
    else:
        click.echo(f"✓ Table {ATTESTATION_TABLE} is up to date.")


@cli.command()
def status():
    """Show whether the ledger table exists and how many records it holds."""
    if not schema_ready(engine):
        click.echo(f"✗ Table {ATTESTATION_TABLE} is missing or incomplete.", err=True)
        sys.exit(1)

    db = SessionLocal()
    try:
        total = AttestationLedger(db).count()
    finally:
        db.close()
    click.echo(f"✓ Table {ATTESTATION_TABLE} present, {total} attestation(s) recorded.")


@cli.command()
@click.option("--search", default="", help="Substring of filename or username.")
@click.option("--date-from", default=None, help="First upload date (YYYY-MM-DD).")
@click.option("--date-to", default=None, help="Last upload date (YYYY-MM-DD).")
@click.option("--tenant-id", type=int, default=None)
@click.option("--user-id", type=int, default=None)
@click.option(
    "--output",
    "-o",
    type=click.Path(dir_okay=False, writable=True, allow_dash=True),
    default=None,
    help="Destination file. Defaults to a timestamped name; '-' writes to stdout.",
)
def export(search, date_from, date_to, tenant_id, user_id, output):
    """Export matching attestations as CSV."""
    db = SessionLocal()
    try:
        filters = build_filter(
            search=search,
            date_from=date_from,
            date_to=date_to,
            tenant_id=tenant_id,
            user_id=user_id,
        )
        buffer = io.StringIO()
        written = write_csv(export_rows(AttestationLedger(db), get_tenant_directory(), filters), buffer)
    except AttestError as e:
        click.echo(f"✗ Export failed: {e.message}", err=True)
        sys.exit(1)
    finally:
        db.close()

    if written == 0:
        click.echo("✗ No records found to export.", err=True)
        sys.exit(1)

    if output == "-":
        click.echo(buffer.getvalue(), nl=False)
        return

    output = output or export_filename()
    with open(output, "w", newline="", encoding="utf-8") as handle:
        handle.write(buffer.getvalue())
    click.echo(f"✓ Exported {written} attestation(s) to {output}.")


@cli.command()
@click.option("--reload", is_flag=True, help="Reload on code changes (development only).")
def serve(reload):
    """Run the API server."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "attest_api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=reload,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    cli()
