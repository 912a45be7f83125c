"""
Certificate Commands for the certreg CLI

Issue, revoke, verify and inspect certificates, and list registry events.
"""

from typing import Optional

import click

from client import CertificateVerifier
from registry.schema import EventType

from ..context import CLIContext, handle_cli_error, pass_context


yes_option = click.option('--yes', '-y', is_flag=True, help='Submit without asking for confirmation')


@click.command('issue')
@click.argument('certificate_id')
@click.option('--student', '-s', 'student_name', required=True, help='Certificate holder name')
@click.option('--course', '-c', 'course_name', required=True, help='Course name')
@click.option('--date', '-d', 'issue_date', required=True, help='Issue date')
@yes_option
@pass_context
@handle_cli_error
def issue(ctx: CLIContext, certificate_id: str, student_name: str, course_name: str,
          issue_date: str, yes: bool):
    """
    Issue a certificate as the current account.

    Examples:
        certreg --account 0xissuer issue CERT-1 -s "Ada Lovelace" -c "Analysis" -d 2024-05-01
    """
    response = ctx.client(assume_yes=yes).issue_certificate(
        certificate_id, student_name, course_name, issue_date
    )
    ctx.output(response.to_dict())


@click.command('revoke')
@click.argument('certificate_id')
@yes_option
@pass_context
@handle_cli_error
def revoke(ctx: CLIContext, certificate_id: str, yes: bool):
    """Revoke a certificate (issuer or registry owner only)."""
    response = ctx.client(assume_yes=yes).revoke_certificate(certificate_id)
    ctx.output(response.to_dict())


@click.command('verify')
@click.argument('certificate_id')
@pass_context
@handle_cli_error
def verify(ctx: CLIContext, certificate_id: str):
    """Verify a certificate and show its details."""
    result = CertificateVerifier(ctx.client()).check(certificate_id)
    ctx.output(result.to_dict())


@click.command('show')
@click.argument('certificate_id')
@pass_context
@handle_cli_error
def show(ctx: CLIContext, certificate_id: str):
    """Show certificate details."""
    response = ctx.client().get_certificate_details(certificate_id)
    ctx.output(response.certificate)


@click.command('events')
@click.option('--from-block', '-f', type=int, default=0, show_default=True, help='First block to include')
@click.option('--type', '-t', 'event_type',
              type=click.Choice([e.value for e in EventType]),
              help='Only show events of this type')
@pass_context
@handle_cli_error
def events(ctx: CLIContext, from_block: int, event_type: Optional[str]):
    """List finalized registry events."""
    response = ctx.client().get_events(from_block, EventType(event_type) if event_type else None)
    limit = ctx.get_config('cli.max_display_items', 50)

    items = response.events
    if ctx.output_format == 'table' and len(items) > limit:
        ctx.logger.info(f"Showing the last {limit} of {len(items)} events")
        items = items[-limit:]

    ctx.output(items)


COMMANDS = [issue, revoke, verify, show, events]
