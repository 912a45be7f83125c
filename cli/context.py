"""
Shared CLI state and error handling for certreg commands.
"""

import functools
import logging
import sys
import traceback
from typing import Any, Dict, Optional

import click

from client import ClientConfig, ClientError, LedgerContext, RegistryClient, open_context
from ledger.base import LedgerCall

from .config import ConfigurationManager
from .output import OutputFormatter


LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


class CLIContext:
    """CLI context shared across commands."""

    def __init__(self):
        self.config_file: Optional[str] = None
        self.profile: Optional[str] = None
        self.output_format: Optional[str] = None
        self.verbose: int = 0
        self.account: Optional[str] = None
        self.config_manager: Optional[ConfigurationManager] = None
        self.config: Dict[str, Any] = {}
        self.logger = logging.getLogger('certreg-cli')
        self._ledger_context: Optional[LedgerContext] = None
        self._handler: Optional[logging.Handler] = None

    def setup_logging(self):
        """Configure logging based on verbosity level."""
        log_levels = {
            0: logging.WARNING,
            1: logging.INFO,
            2: logging.DEBUG
        }
        level = log_levels.get(min(self.verbose, 2), logging.DEBUG)

        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))

        root = logging.getLogger()
        for existing in list(root.handlers):
            if getattr(existing, 'certreg_cli', False):
                root.removeHandler(existing)
        handler.certreg_cli = True
        root.addHandler(handler)
        root.setLevel(level)
        self._handler = handler

        # Suppress verbose third-party logs unless in debug mode
        if self.verbose < 2:
            logging.getLogger('requests').setLevel(logging.WARNING)
            logging.getLogger('urllib3').setLevel(logging.WARNING)

    def load_config(self):
        """Load configuration from all sources, then apply command line overrides."""
        self.config_manager = ConfigurationManager(self.config_file, self.profile)
        self.config = self.config_manager.load()

        if self.account:
            self.config_manager.set('account.address', self.account)
        if self.output_format is None:
            self.output_format = self.config_manager.get('cli.output_format', 'table')

        self.logger.debug(f"Configuration sources: {', '.join(self.config_manager.get_sources())}")

    def get_config(self, key_path: str, default: Any = None) -> Any:
        return self.config_manager.get(key_path, default) if self.config_manager else default

    def output(self, data: Any):
        """Write data to stdout in the selected format."""
        formatter = OutputFormatter(
            self.output_format or 'table',
            color_output=self.get_config('cli.color_output', True)
        )
        click.echo(formatter.format(data))

    def ledger_context(self, assume_yes: bool = False) -> LedgerContext:
        """Open the ledger connection, prompting before submissions unless assume_yes."""
        if self._ledger_context is None:
            confirm = None
            if not assume_yes and self.get_config('cli.confirm_mutations', True):
                confirm = confirm_submission
            self._ledger_context = open_context(self.config, confirm=confirm)
        return self._ledger_context

    def client(self, assume_yes: bool = False) -> RegistryClient:
        return RegistryClient(
            self.ledger_context(assume_yes),
            ClientConfig.from_dict(self.get_config('client', {}))
        )

    def close(self):
        if self._ledger_context is not None:
            self._ledger_context.close()
            self._ledger_context = None
        if self._handler is not None:
            logging.getLogger().removeHandler(self._handler)
            self._handler = None


pass_context = click.make_pass_decorator(CLIContext, ensure=True)


def confirm_submission(call: LedgerCall) -> bool:
    """Ask the user to approve a submission."""
    arguments = ', '.join(str(arg) for arg in call.args)
    return click.confirm(f"Submit {call.method.value}({arguments}) as {call.sender}?", default=False)


def handle_cli_error(func):
    """Decorator to handle CLI errors gracefully."""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except (click.exceptions.ClickException, click.exceptions.Abort, click.exceptions.Exit):
            raise
        except KeyboardInterrupt:
            click.echo("\nOperation cancelled by user.", err=True)
            sys.exit(130)
        except Exception as e:
            ctx = click.get_current_context(silent=True)
            cli_ctx = ctx.find_object(CLIContext) if ctx else None

            if isinstance(e, ClientError):
                click.echo(f"Error: {e.message}", err=True)
                if e.details != e.message:
                    click.echo(f"Details: {e.details}", err=True)
            else:
                click.echo(f"Error: {e}", err=True)

            if cli_ctx and cli_ctx.verbose >= 2:
                # Show full traceback in debug mode
                click.echo(traceback.format_exc(), err=True)
            else:
                click.echo("Use -vv for detailed error information.", err=True)

            sys.exit(1)

    return wrapper
