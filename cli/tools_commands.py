"""Commands to verify and install the external tools used by archive runs."""

import click

from config import COMPRESSION_ALIASES, ENCRYPTION_ALIASES
from s3_archiver.errors import ConfigurationError
from s3_archiver.models import CompressionKind, EncryptionKind
from s3_archiver.tools import find_missing_tools, install_tools, required_tools
from cli.utils import handle_error

COMPRESSION_NAMES = {**{kind.value: kind.value for kind in CompressionKind}, **COMPRESSION_ALIASES}
ENCRYPTION_NAMES = {**{kind.value: kind.value for kind in EncryptionKind}, **ENCRYPTION_ALIASES}


def register_commands(cli):
    """Register tools commands with main CLI."""

    @cli.group('tools')
    def tools_group():
        """Check or install zstd and gpg."""
        pass

    def _tools(compression, encryption, notify):
        return required_tools(COMPRESSION_NAMES[compression], ENCRYPTION_NAMES[encryption], notify)

    tool_options = [
        click.option('--compression', '-c', type=click.Choice(sorted(COMPRESSION_NAMES)), default='zstd'),
        click.option('--encryption', '-e', type=click.Choice(sorted(ENCRYPTION_NAMES)), default='gpg'),
        click.option('--notify', is_flag=True, help='Include tools for encrypted notifications'),
    ]

    def with_tool_options(func):
        for option in reversed(tool_options):
            func = option(func)
        return func

    @tools_group.command('check')
    @with_tool_options
    def check(compression, encryption, notify):
        """Report missing tools; exits 1 if any are missing."""
        tools = _tools(compression, encryption, notify)
        missing = find_missing_tools(tools)
        for tool in tools:
            click.echo(f"  {'✗' if tool in missing else '✓'} {tool}")
        if missing:
            click.echo(f"\nMissing: {', '.join(missing)}. Run 's3archiver tools install'.")
            raise SystemExit(1)
        click.echo("\n✓ All required tools are installed")

    @tools_group.command('install')
    @with_tool_options
    @click.pass_context
    def install(ctx, compression, encryption, notify):
        """Install missing tools with apt, dnf, yum or brew."""
        try:
            installed = install_tools(_tools(compression, encryption, notify))
        except ConfigurationError as e:
            handle_error(e, ctx.obj['verbose'])
        if installed:
            click.echo(f"✓ Installed: {', '.join(installed)}")
        else:
            click.echo("✓ All required tools are installed")
