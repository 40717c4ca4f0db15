"""Main CLI entry point - Root command group with global options."""

import click

from version import __version__


@click.group(context_settings={'help_option_names': ['-h', '--help']})
@click.option('--config', default=None, help='JSON file with default option values')
@click.option('--verbose', '-v', is_flag=True, help='Show debug logging and tracebacks')
@click.version_option(version=__version__, prog_name='S3 Archiver')
@click.pass_context
def cli(ctx, config, verbose):
    """S3 Archiver - per-folder archival of a directory tree to S3.

    Every directory under the base path becomes one archive
    (tar, tar.gz or tar.zst), optionally encrypted with gpg or AES-256,
    uploaded to S3 under its relative path and removed locally.

    Commands:
        archive, config, tools

    Examples:
        # Archive a tree to Deep Archive with gpg encryption
        s3archiver archive -b /data -s my-bucket -k me@example.com

        # Preview the work without touching anything
        s3archiver archive -b /data -s my-bucket -k me@example.com -d

        # Check that zstd and gpg are installed
        s3archiver tools check
    """
    ctx.ensure_object(dict)
    ctx.obj['config_path'] = config
    ctx.obj['verbose'] = verbose


def register_all_commands():
    """Register all command modules with the main CLI."""
    from cli import archive_commands, config_commands, tools_commands

    archive_commands.register_commands(cli)
    config_commands.register_commands(cli)
    tools_commands.register_commands(cli)


# Register all commands when module is imported
register_all_commands()
