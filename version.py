import subprocess
import logging
from importlib import metadata

logger = logging.getLogger(__name__)


def _package_version():
    try:
        return f"v{metadata.version('s3-archiver')}"
    except metadata.PackageNotFoundError:
        return "v0.0.0"


def get_version():
    """Get version from git tags and commit status, else the installed package."""
    try:
        tag = subprocess.check_output(
            ['git', 'describe', '--tags', '--abbrev=0'],
            stderr=subprocess.DEVNULL,
            text=True
        ).strip()

        commit = subprocess.check_output(
            ['git', 'rev-parse', '--short', 'HEAD'],
            stderr=subprocess.DEVNULL,
            text=True
        ).strip()

        tag_commit = subprocess.check_output(
            ['git', 'rev-list', '-n', '1', tag],
            stderr=subprocess.DEVNULL,
            text=True
        ).strip()[:7]

        has_changes = subprocess.call(
            ['git', 'diff-index', '--quiet', 'HEAD', '--'],
            stderr=subprocess.DEVNULL
        ) != 0

        version = tag if commit == tag_commit else f"{tag}-{commit}"
        return f"{version}-dev" if has_changes else version

    except (subprocess.CalledProcessError, FileNotFoundError):
        logger.debug("Could not determine version from git, using package metadata")
        return _package_version()


__version__ = get_version()
