#!/usr/bin/env python3
"""
Certificate Registry - Command Line Interface

A CLI for deploying a certificate registry, issuing, revoking and verifying
certificates, and managing the accounts allowed to issue them.
"""

import sys
from typing import Optional

import click

from client import ClientError, ErrorKind
from ledger.base import LedgerError
from ledger.local import LocalLedger

from . import __version__
from .commands.certificate import COMMANDS as CERTIFICATE_COMMANDS
from .commands.config import config
from .commands.issuer import issuer
from .context import CLIContext, handle_cli_error, pass_context


@click.group(context_settings={'help_option_names': ['-h', '--help']})
@click.option('--config-file', '-c',
              type=click.Path(dir_okay=False),
              help='Path to configuration file')
@click.option('--profile', '-p',
              type=click.Choice(['development', 'production']),
              help='Configuration profile')
@click.option('--output-format', '-o',
              type=click.Choice(['table', 'json', 'yaml']),
              help='Output format')
@click.option('--verbose', '-v',
              count=True,
              help='Increase verbosity (-v for INFO, -vv for DEBUG)')
@click.option('--account', '-a',
              help='Account address to act as')
@click.version_option(version=__version__, prog_name='certreg')
@click.pass_context
@handle_cli_error
def cli(click_ctx: click.Context, config_file: Optional[str], profile: Optional[str],
        output_format: Optional[str], verbose: int, account: Optional[str]):
    """
    Certificate Registry Command Line Interface

    Issue, revoke and verify certificates on a shared ledger.

    Examples:
        certreg deploy --owner 0xowner
        certreg --account 0xowner issuer authorize 0xissuer1
        certreg --account 0xissuer1 issue CERT-1 -s "Ada" -c "Analysis" -d 2024-05-01
        certreg verify CERT-1
    """
    ctx = click_ctx.ensure_object(CLIContext)
    ctx.config_file = config_file
    ctx.profile = profile
    ctx.output_format = output_format
    ctx.verbose = verbose
    ctx.account = account

    ctx.setup_logging()
    ctx.load_config()
    click_ctx.call_on_close(ctx.close)

    ctx.logger.debug("CLI initialized with context")


@cli.command()
@click.option('--owner', required=True, help='Owner address of the new registry')
@click.option('--storage-dir', type=click.Path(file_okay=False),
              help='Ledger data directory (default: from configuration)')
@pass_context
@handle_cli_error
def deploy(ctx: CLIContext, owner: str, storage_dir: Optional[str]):
    """Deploy a new registry on the local ledger."""
    if ctx.get_config('ledger.type') != 'local':
        raise click.ClickException("Deploying is only supported on the local ledger")

    storage_dir = storage_dir or ctx.get_config('ledger.storage_dir')
    with LocalLedger.deploy(owner, storage_dir) as ledger:
        state = ledger.state_snapshot()
        ctx.output({
            'success': True,
            'owner': state.owner,
            'storageDir': str(storage_dir),
            'blockNumber': ledger.block_number()
        })


@cli.command()
@pass_context
@handle_cli_error
def whoami(ctx: CLIContext):
    """Show the current account and its registry roles."""
    client = ctx.client()
    address = client.context.account.address
    if not address:
        raise ClientError(
            ErrorKind.INVALID_INPUT,
            "No account selected",
            "Pass --account or set account.address in the configuration"
        )

    ownership = client.is_owner()
    authorization = client.is_authorized_issuer(address)
    ctx.output({
        'account': address,
        'owner': ownership.owner,
        'isOwner': ownership.is_owner,
        'isAuthorized': authorization.is_authorized
    })


@cli.command()
@pass_context
@handle_cli_error
def health(ctx: CLIContext):
    """Check the ledger connection."""
    try:
        client = ctx.client()
    except LedgerError as e:
        ctx.output({'healthy': False, 'error': str(e)})
        sys.exit(1)

    status = client.check_health()
    ctx.output(status)
    if not status['healthy']:
        sys.exit(1)


def register_commands():
    """Register all command modules with the main CLI."""
    for command in CERTIFICATE_COMMANDS:
        cli.add_command(command)
    cli.add_command(issuer)
    cli.add_command(config)


register_commands()


if __name__ == '__main__':
    cli()
