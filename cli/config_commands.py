"""Configuration management commands."""

import json
from pathlib import Path

import click

from config import create_default_config, load_config_file
from s3_archiver.errors import ConfigurationError
from cli.utils import handle_error


def register_commands(cli):
    """Register config commands with main CLI."""

    @cli.group('config')
    @click.pass_context
    def config_group(ctx):
        """Create and inspect the defaults file."""
        pass

    @config_group.command('init')
    @click.argument('path', default='s3archiver.json')
    @click.pass_context
    def init_config(ctx, path):
        """Write a template configuration file to PATH.

        Examples:
            s3archiver config init
            s3archiver --config s3archiver.json archive
        """
        if Path(path).exists():
            click.echo(f"Configuration file already exists: {path}")
            if not click.confirm("Overwrite existing configuration?"):
                return

        create_default_config(path)
        click.echo(f"✓ Created configuration file: {path}")
        click.echo("\nNext steps:")
        click.echo("  1. Set base_dir and bucket")
        click.echo("  2. Choose compression/encryption and set gpg_key or passphrase")
        click.echo(f"  3. Run: s3archiver --config {path} archive")

    @config_group.command('show')
    @click.pass_context
    def show_config(ctx):
        """Print the defaults loaded from --config (secrets masked)."""
        config_path = ctx.obj['config_path']
        if not config_path:
            click.echo("No --config file given.")
            return
        try:
            options = load_config_file(config_path)
        except ConfigurationError as e:
            handle_error(e, ctx.obj['verbose'])

        if options.get('passphrase'):
            options['passphrase'] = '********'
        smtp = (options.get('notification') or {}).get('smtp') or {}
        if smtp.get('password'):
            smtp['password'] = '********'
        click.echo(json.dumps(options, indent=2))
