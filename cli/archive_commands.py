"""Archive command - compress, encrypt and upload every folder of a tree."""

import time

import click
from tabulate import tabulate

from config import build_config, load_config_file, setup_logging
from s3_archiver.utils import format_bytes
from s3_archiver.errors import ConfigurationError
from s3_archiver.models import FolderState
from cli.utils import create_archival_run, create_dry_run, format_time, handle_error


def _merge_options(file_options, cli_options):
    """Command line values win over config file values."""
    merged = dict(file_options)
    for key, value in cli_options.items():
        if value is None:
            continue
        if isinstance(value, dict):
            merged[key] = _merge_options(merged.get(key) or {}, value)
        else:
            merged[key] = value
    return merged


def register_commands(cli):
    """Register the archive command with main CLI."""

    @cli.command('archive', context_settings={'help_option_names': ['-h', '--help']})
    @click.option('--base-dir', '-b', help='Base directory containing subfolders (required)')
    @click.option('--output-dir', '-o', help='Output directory for temporary files')
    @click.option('--gpg-key', '-k', help='GPG key ID or email for encryption')
    @click.option('--encryption', '-e', help='Encryption type: gpg, aes256, none (default gpg)')
    @click.option('--passphrase', '-p', help='Passphrase for AES256 encryption')
    @click.option('--compression', '-c', help='Compression type: zstd, tz, none (default zstd)')
    @click.option('--bucket', '-s', help='S3 bucket name or s3:// URI (required)')
    @click.option('--folder', '-f', help='Folder prefix inside the bucket')
    @click.option('--profile', '-a', help='AWS CLI profile (default "default")')
    @click.option('--storage-class', '-l', help='S3 storage class (default DEEP_ARCHIVE)')
    @click.option('--dry-run', '-d', is_flag=True,
                  help='Count folders and archives without processing')
    @click.option('--email-recipient', '-r', help='Email address for the run report')
    @click.option('--email-gpg-key', '-g', help='GPG key used to encrypt the run report')
    @click.option('--notify-on', '-n', help='Send report on: always, success, failure (default always)')
    @click.option('--workers', type=int, help='Folders processed in parallel (default 1)')
    @click.option('--keep-going', is_flag=True,
                  help='Continue with remaining folders after a failure')
    @click.option('--timeout', type=float, help='Time limit in seconds for each external tool call')
    @click.pass_context
    def archive(ctx, base_dir, output_dir, gpg_key, encryption, passphrase, compression,
                bucket, folder, profile, storage_class, dry_run, email_recipient,
                email_gpg_key, notify_on, workers, keep_going, timeout):
        """Archive every folder under BASE_DIR to S3.

        Each directory's immediate files are packed into one archive,
        optionally encrypted, uploaded to
        s3://BUCKET/FOLDER/<relative path>/<archive> and deleted locally.
        The first failing folder stops the run unless --keep-going is given.

        Examples:
            # zstd + gpg to Deep Archive
            s3archiver archive -b /data -s my-bucket -k me@example.com

            # gzip + AES-256 into a prefix
            s3archiver archive -b /data -s my-bucket -f photos -c tz -e aes256 -p secret

            # Count what would be uploaded
            s3archiver archive -b /data -s my-bucket -e none -d
        """
        verbose = ctx.obj['verbose']

        try:
            file_options = load_config_file(ctx.obj['config_path']) if ctx.obj['config_path'] else {}
            options = _merge_options(file_options, {
                'base_dir': base_dir,
                'output_dir': output_dir,
                'gpg_key': gpg_key,
                'encryption': encryption,
                'passphrase': passphrase,
                'compression': compression,
                'bucket': bucket,
                'folder': folder,
                'profile': profile,
                'storage_class': storage_class,
                'dry_run': dry_run or None,
                'workers': workers,
                'abort_on_failure': False if keep_going else None,
                'timeout_seconds': timeout,
                'notification': {
                    'recipient': email_recipient,
                    'gpg_key': email_gpg_key,
                    'notify_on': notify_on,
                },
            })
            if not options.get('base_dir') or not options.get('bucket'):
                raise ConfigurationError("Base directory and S3 bucket are required.")
            config = build_config(**options)
        except ConfigurationError as e:
            handle_error(e, verbose)

        setup_logging(config.logging.level, config.logging.file, verbose)

        if config.dry_run:
            _dry_run(config)
            return

        click.echo(f"Archiving {config.base_dir} -> s3://{config.bucket_name}/{config.key_prefix}")
        click.echo(f"  Compression: {config.compression.value}, encryption: {config.encryption.value}")
        click.echo(f"  Staging: {config.output_dir}")

        start = time.time()
        try:
            report = create_archival_run(config).run()
        except ConfigurationError as e:
            handle_error(e, verbose)

        _print_summary(report, time.time() - start)
        if not report.succeeded:
            ctx.exit(1)


def _dry_run(config):
    counts = create_dry_run(config).count()
    click.echo(f"Dry run for {config.base_dir}")
    click.echo(f"  Folders found: {counts.folders}")
    click.echo(f"  Archives that would be created: {counts.archives}")


def _print_summary(report, elapsed):
    uploaded_bytes = sum(r.artifact_size for r in report.results if r.state == FolderState.CLEANED)
    failures = [r for r in report.results if r.state == FolderState.FAILED]

    click.echo("\n" + "=" * 80)
    click.echo("ARCHIVE SUMMARY")
    click.echo("=" * 80)
    click.echo(tabulate([
        ['Status', report.status.value.upper()],
        ['Folders seen', report.folders_seen],
        ['Skipped (no files)', report.folders_skipped],
        ['Archives created', report.archives_created],
        ['Uploads succeeded', report.uploads_succeeded],
        ['Uploads failed', report.uploads_failed],
        ['Uploaded', format_bytes(uploaded_bytes)],
        ['Elapsed', format_time(elapsed)],
    ], tablefmt='simple'))

    if failures:
        click.echo("\nFailures:")
        click.echo(tabulate(
            [[r.task.relative_path or '.', r.failed_stage, r.error] for r in failures],
            headers=['Folder', 'Stage', 'Error'],
        ))
    if report.aborted:
        click.echo("\nRun stopped after the first failure; remaining folders were not processed.")
    click.echo("=" * 80)
