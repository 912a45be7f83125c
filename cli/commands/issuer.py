"""
Issuer Management Commands for the certreg CLI
"""

import click

from ..context import CLIContext, handle_cli_error, pass_context


@click.group()
def issuer():
    """
    Issuer authorization commands.

    Only the registry owner can authorize or revoke issuers; the registry
    rejects these operations from any other account.
    """


@issuer.command('authorize')
@click.argument('address')
@click.option('--yes', '-y', is_flag=True, help='Submit without asking for confirmation')
@pass_context
@handle_cli_error
def authorize(ctx: CLIContext, address: str, yes: bool):
    """Authorize ADDRESS to issue certificates."""
    response = ctx.client(assume_yes=yes).authorize_issuer(address)
    ctx.output(response.to_dict())


@issuer.command('revoke')
@click.argument('address')
@click.option('--yes', '-y', is_flag=True, help='Submit without asking for confirmation')
@pass_context
@handle_cli_error
def revoke(ctx: CLIContext, address: str, yes: bool):
    """Revoke ADDRESS's authorization to issue certificates."""
    response = ctx.client(assume_yes=yes).revoke_issuer(address)
    ctx.output(response.to_dict())


@issuer.command('check')
@click.argument('address')
@pass_context
@handle_cli_error
def check(ctx: CLIContext, address: str):
    """Check whether ADDRESS may issue certificates."""
    response = ctx.client().is_authorized_issuer(address)
    ctx.output({'issuer': address.strip().lower(), 'isAuthorized': response.is_authorized})
