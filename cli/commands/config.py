"""
Configuration Management Commands for the certreg CLI

Commands for inspecting, validating and editing CLI configuration.
"""

import os
import sys
from typing import Optional

import click

from ..config import CONFIG_SEARCH_PATHS, ENV_PREFIX, parse_config_value
from ..context import CLIContext, handle_cli_error, pass_context


@click.group()
def config():
    """
    Configuration management commands.

    Configuration is merged from defaults, the selected profile, the first
    configuration file found and CERTREG_ environment variables.
    """


@config.command('show')
@click.option('--key', help='Specific configuration key to show (dot notation)')
@click.option('--sources', is_flag=True, help='Show configuration sources')
@click.option('--export-env', is_flag=True, help='Export as environment variables')
@pass_context
@handle_cli_error
def show_config(ctx: CLIContext, key: Optional[str], sources: bool, export_env: bool):
    """
    Display current configuration settings.

    Examples:
        certreg config show
        certreg config show --key client
        certreg config show --sources
        certreg config show --export-env > .env
    """
    manager = ctx.config_manager

    if export_env:
        for name, value in manager.export_environment().items():
            click.echo(f"export {name}=\"{value}\"")
        return

    if sources:
        click.echo("Configuration sources (lowest to highest precedence):")
        for i, source in enumerate(manager.get_sources(), 1):
            click.echo(f"  {i}. {source}")
        return

    if key:
        value = manager.get(key)
        if value is None:
            click.echo(f"Configuration key not found: {key}", err=True)
            sys.exit(1)
        ctx.output(value if isinstance(value, dict) else {key: value})
    else:
        ctx.output(manager.load())


@config.command('validate')
@pass_context
@handle_cli_error
def validate_config(ctx: CLIContext):
    """Validate configuration values."""
    ctx.logger.info("Validating configuration")
    errors = ctx.config_manager.validate()

    if errors:
        click.echo("Configuration validation failed:")
        for error in errors:
            click.echo(f"  - {error}")
        sys.exit(1)

    click.echo("Configuration is valid")
    click.echo(f"  Ledger: {ctx.get_config('ledger.type')}")
    click.echo(f"  Account: {ctx.get_config('account.address') or '(none)'}")
    click.echo(f"  Output format: {ctx.get_config('cli.output_format')}")


@config.command('set')
@click.argument('key')
@click.argument('value')
@click.option('--save', is_flag=True, help='Save to a configuration file')
@click.option('--file', 'save_path', default='.certreg.yml', show_default=True,
              help='File written by --save')
@pass_context
@handle_cli_error
def set_config(ctx: CLIContext, key: str, value: str, save: bool, save_path: str):
    """
    Set a configuration value using dot notation.

    Examples:
        certreg config set account.address 0xowner --save
        certreg config set client.read_attempts 5
    """
    manager = ctx.config_manager
    parsed_value = parse_config_value(value)
    manager.set(key, parsed_value)
    click.echo(f"Set {key} = {parsed_value}")

    errors = manager.validate()
    if errors:
        raise click.ClickException(f"Invalid configuration: {'; '.join(errors)}")

    if save:
        manager.save(save_path, 'json' if save_path.endswith('.json') else 'yaml')
        click.echo(f"Saved to {save_path}")


@config.command('search-paths')
@handle_cli_error
def search_paths():
    """Show configuration file search paths in order of precedence."""
    for i, path in enumerate(CONFIG_SEARCH_PATHS, 1):
        marker = 'found' if path.exists() else 'missing'
        click.echo(f"  {i}. [{marker}] {path}")

    click.echo(f"\nEnvironment variable prefix: {ENV_PREFIX}")
    env_vars = sorted(k for k in os.environ if k.startswith(ENV_PREFIX))
    for var in env_vars:
        click.echo(f"  {var} = {os.environ[var]}")
