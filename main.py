#!/usr/bin/env python3
"""S3 Archiver - archive each folder of a directory tree to S3.

Examples:
    # Get help
    python -m main --help
    python -m main archive --help

    # zstd + gpg, uploaded to Deep Archive
    python -m main archive -b /data -s my-bucket -k me@example.com

    # Preview only
    python -m main archive -b /data -s my-bucket -k me@example.com -d
"""

from cli.main import cli

if __name__ == '__main__':
    cli()
