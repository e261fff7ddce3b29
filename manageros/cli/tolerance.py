"""CLI commands for tolerance rule operations."""

import asyncio
from typing import Optional

import click
from tabulate import tabulate

from manageros.business.tolerance import ExceptionStatus, OrganizationRole
from manageros.observability.logging import init_logging
from manageros.schemas.exception import ExceptionFilters
from manageros.security.auth import CallerContext
from manageros.services import exception_store, rule_store
from manageros.services.evaluator import evaluate_all_rules
from manageros.settings import settings
from manageros.storage.db import close_database, get_session


def _operator_context(organization_id: int) -> CallerContext:
    """Caller used for commands run by an operator from the shell."""
    return CallerContext(
        user_id="cli",
        organization_id=organization_id,
        role=OrganizationRole.ADMIN
    )


def _run(coro):
    async def runner():
        try:
            return await coro
        finally:
            await close_database()

    return asyncio.run(runner())


@click.group()
def cli():
    """ManagerOS tolerance rule commands."""
    init_logging(settings.LOG_LEVEL, settings.LOG_TO_FILES)


@cli.command("run-check")
@click.option('--organization-id', required=True, type=int, help='Organization ID')
def run_check(organization_id: int):
    """Evaluate all enabled rules of an organization."""

    async def run():
        async with get_session() as db:
            return await evaluate_all_rules(db, organization_id)

    result = _run(run())

    click.echo(f"✅ {result.exceptions_created} exception(s) created")
    for error in result.errors:
        click.echo(f"❌ {error}")


@cli.command("list-rules")
@click.option('--organization-id', required=True, type=int, help='Organization ID')
def list_rules(organization_id: int):
    """List the tolerance rules of an organization."""

    async def run():
        async with get_session() as db:
            return await rule_store.get_tolerance_rules(db, _operator_context(organization_id))

    rules = _run(run())

    table_data = [
        [
            rule.id,
            rule.name,
            rule.rule_type.value,
            "✅" if rule.is_enabled else "❌",
            ", ".join(f"{k}={v}" for k, v in rule.config.items())
        ]
        for rule in rules
    ]
    headers = ["ID", "Name", "Type", "Enabled", "Config"]
    click.echo(tabulate(table_data, headers=headers, tablefmt="grid"))


@cli.command("list-exceptions")
@click.option('--organization-id', required=True, type=int, help='Organization ID')
@click.option(
    '--status',
    type=click.Choice([s.value for s in ExceptionStatus]),
    help='Only exceptions in this status'
)
@click.option('--limit', default=50, show_default=True, help='Maximum rows')
def list_exceptions(organization_id: int, status: Optional[str], limit: int):
    """List the newest exceptions of an organization."""

    async def run():
        filters = ExceptionFilters(status=ExceptionStatus(status) if status else None)
        async with get_session() as db:
            return await exception_store.get_exceptions(
                db, _operator_context(organization_id), filters, limit=limit
            )

    exceptions = _run(run())

    table_data = [
        [
            exc.id,
            exc.rule.name if exc.rule else "(deleted rule)",
            exc.severity.value,
            exc.status.value,
            f"{exc.entity_type.value}:{exc.entity_id}",
            exc.message,
            exc.created_at.strftime("%Y-%m-%d %H:%M")
        ]
        for exc in exceptions
    ]
    headers = ["ID", "Rule", "Severity", "Status", "Subject", "Message", "Created"]
    click.echo(tabulate(table_data, headers=headers, tablefmt="grid"))


if __name__ == '__main__':
    cli()
