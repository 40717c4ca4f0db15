"""Verify or install the external binaries an archival run depends on."""

import logging
import shutil
import subprocess
from typing import Dict, List, Optional

from .errors import ConfigurationError
from .models import CompressionKind, EncryptionKind

logger = logging.getLogger(__name__)

# binary -> package name per package manager family
PACKAGES: Dict[str, Dict[str, str]] = {
    'zstd': {'apt': 'zstd', 'dnf': 'zstd', 'yum': 'zstd', 'brew': 'zstd'},
    'pigz': {'apt': 'pigz', 'dnf': 'pigz', 'yum': 'pigz', 'brew': 'pigz'},
    'gpg': {'apt': 'gnupg', 'dnf': 'gnupg2', 'yum': 'gnupg2', 'brew': 'gnupg'},
}

INSTALL_COMMANDS = {
    'apt': ['sudo', 'apt-get', 'install', '-y'],
    'dnf': ['sudo', 'dnf', 'install', '-y'],
    'yum': ['sudo', 'yum', 'install', '-y'],
    'brew': ['brew', 'install'],
}


def required_tools(compression, encryption, notify: bool = False) -> List[str]:
    """Binaries needed for a configuration. pigz is optional and not listed."""
    tools = []
    if CompressionKind(compression) == CompressionKind.ZSTD:
        tools.append('zstd')
    if EncryptionKind(encryption) == EncryptionKind.ASYMMETRIC or notify:
        tools.append('gpg')
    return tools


def find_missing_tools(tools: List[str]) -> List[str]:
    return [tool for tool in tools if shutil.which(tool) is None]


def detect_package_manager() -> Optional[str]:
    for manager, binary in (('apt', 'apt-get'), ('dnf', 'dnf'), ('yum', 'yum'), ('brew', 'brew')):
        if shutil.which(binary):
            return manager
    return None


def install_tools(tools: List[str]) -> List[str]:
    """Install missing ``tools`` with the system package manager.

    Returns the tools that were installed. Raises ConfigurationError when no
    supported package manager is found or the install fails.
    """
    missing = find_missing_tools(tools)
    if not missing:
        logger.info("All required tools are installed")
        return []

    manager = detect_package_manager()
    if manager is None:
        raise ConfigurationError(
            f"Unsupported package manager. Install {', '.join(missing)} manually."
        )

    packages = [PACKAGES[tool][manager] for tool in missing]
    cmd = INSTALL_COMMANDS[manager] + packages
    logger.info(f"Installing: {' '.join(cmd)}")
    result = subprocess.run(cmd)
    if result.returncode != 0:
        raise ConfigurationError(f"Package installation failed ({manager} exited {result.returncode})")
    return missing
