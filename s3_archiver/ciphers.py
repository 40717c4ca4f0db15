"""Cipher providers - turn a local archive into the artifact to upload.

Symmetric artifacts use this format:
    [MAGIC(8)][VERSION(1)][SALT(16)][IV(16)][ITERATIONS(4)][CIPHERTEXT...][HMAC(32)]

AES-256-CTR for streaming encryption, HMAC-SHA256 over the ciphertext for
integrity and PBKDF2-HMAC-SHA256 with a random salt for key derivation.
"""

import logging
import os
import struct
from pathlib import Path
from typing import Optional, Tuple

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, hmac
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from .codecs import run_tool
from .errors import ConfigurationError, StageFailure
from .models import EncryptionKind

logger = logging.getLogger(__name__)

MAGIC = b"S3ARENC1"
VERSION = 1
SALT_LEN = 16
IV_LEN = 16
HMAC_LEN = 32
HEADER_LEN = len(MAGIC) + 1 + SALT_LEN + IV_LEN + 4
DEFAULT_ITERATIONS = 200_000
DEFAULT_CHUNK_SIZE = 1024 * 1024


class ArchiveCipher:
    """Transform an archive in place into its upload artifact."""

    kind: EncryptionKind
    suffix: str = ''

    def encrypt(self, archive_path: Path) -> Path:
        raise NotImplementedError


class PassthroughCipher(ArchiveCipher):
    """No encryption; the archive is the artifact."""

    kind = EncryptionKind.NONE

    def encrypt(self, archive_path: Path) -> Path:
        return archive_path


class GpgCipher(ArchiveCipher):
    """Public-key encryption with gpg for a recipient already in the keyring."""

    kind = EncryptionKind.ASYMMETRIC
    suffix = '.gpg'

    def __init__(self, key_id: Optional[str], gpg_binary: str = 'gpg',
                 timeout: Optional[float] = None):
        self.key_id = key_id
        self.gpg_binary = gpg_binary
        self.timeout = timeout

    def encrypt(self, archive_path: Path) -> Path:
        if not self.key_id:
            raise ConfigurationError("GPG key is required for GPG encryption.")

        output_path = archive_path.with_name(archive_path.name + self.suffix)
        logger.info(f"Encrypting {archive_path.name} for {self.key_id}")
        run_tool('encrypt', [
            self.gpg_binary, '--batch', '--yes', '--trust-model', 'always',
            '--output', output_path,
            '--encrypt', '--recipient', self.key_id,
            archive_path,
        ], archive_path, timeout=self.timeout)

        _remove_plaintext(archive_path)
        return output_path


class PassphraseCipher(ArchiveCipher):
    """Salted AES-256 encryption keyed from a passphrase."""

    kind = EncryptionKind.SYMMETRIC
    suffix = '.enc'

    def __init__(self, passphrase: Optional[str], iterations: int = DEFAULT_ITERATIONS):
        self.passphrase = passphrase
        self.iterations = iterations

    def encrypt(self, archive_path: Path) -> Path:
        if not self.passphrase:
            raise ConfigurationError("AES passphrase is required for AES256 encryption.")

        output_path = archive_path.with_name(archive_path.name + self.suffix)
        logger.info(f"Encrypting {archive_path.name} with AES-256")
        try:
            encrypt_file(archive_path, output_path, self.passphrase, iterations=self.iterations)
        except (OSError, ValueError) as e:
            raise StageFailure('encrypt', archive_path, str(e)) from e

        _remove_plaintext(archive_path)
        return output_path


def _remove_plaintext(archive_path: Path):
    try:
        archive_path.unlink()
    except OSError as e:
        raise StageFailure('encrypt', archive_path, f"Cannot remove plaintext archive: {e}") from e


def _derive_keys(passphrase: str, salt: bytes, iterations: int) -> Tuple[bytes, bytes]:
    """Derive (encryption key, hmac key) from a passphrase."""
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=64,
        salt=salt,
        iterations=int(iterations),
    )
    key_material = kdf.derive(passphrase.encode('utf-8'))
    return key_material[:32], key_material[32:]


def encrypt_file(input_path: Path, output_path: Path, passphrase: str,
                 iterations: int = DEFAULT_ITERATIONS, chunk_size: int = DEFAULT_CHUNK_SIZE):
    """Stream-encrypt ``input_path`` into ``output_path``."""
    salt = os.urandom(SALT_LEN)
    iv = os.urandom(IV_LEN)
    enc_key, hmac_key = _derive_keys(passphrase, salt, iterations)

    encryptor = Cipher(algorithms.AES(enc_key), modes.CTR(iv)).encryptor()
    mac = hmac.HMAC(hmac_key, hashes.SHA256())

    header = MAGIC + bytes([VERSION]) + salt + iv + struct.pack(">I", int(iterations))

    try:
        with open(input_path, 'rb') as fin, open(output_path, 'wb') as fout:
            fout.write(header)
            while True:
                chunk = fin.read(chunk_size)
                if not chunk:
                    break
                out = encryptor.update(chunk)
                mac.update(out)
                fout.write(out)

            final = encryptor.finalize()
            if final:
                mac.update(final)
                fout.write(final)
            fout.write(mac.finalize())
    except Exception:
        if output_path.exists():
            output_path.unlink()
        raise


def decrypt_file(input_path: Path, output_path: Path, passphrase: str,
                 chunk_size: int = DEFAULT_CHUNK_SIZE):
    """Decrypt an artifact written by ``encrypt_file``.

    Raises:
        ValueError: wrong passphrase, unknown format or truncated file
    """
    with open(input_path, 'rb') as fin:
        header = fin.read(HEADER_LEN)
        if len(header) < HEADER_LEN or header[:len(MAGIC)] != MAGIC:
            raise ValueError(f"Not an encrypted archive: {input_path}")
        if header[len(MAGIC)] != VERSION:
            raise ValueError(f"Unsupported format version: {header[len(MAGIC)]}")

        offset = len(MAGIC) + 1
        salt = header[offset:offset + SALT_LEN]
        offset += SALT_LEN
        iv = header[offset:offset + IV_LEN]
        offset += IV_LEN
        iterations = struct.unpack(">I", header[offset:offset + 4])[0]

        ciphertext_size = input_path.stat().st_size - HEADER_LEN - HMAC_LEN
        if ciphertext_size < 0:
            raise ValueError(f"Encrypted archive is truncated: {input_path}")

        enc_key, hmac_key = _derive_keys(passphrase, salt, iterations)
        decryptor = Cipher(algorithms.AES(enc_key), modes.CTR(iv)).decryptor()
        mac = hmac.HMAC(hmac_key, hashes.SHA256())

        tmp_output = output_path.with_name(output_path.name + '.tmp')
        try:
            with open(tmp_output, 'wb') as fout:
                remaining = ciphertext_size
                while remaining > 0:
                    chunk = fin.read(min(chunk_size, remaining))
                    if not chunk:
                        raise ValueError(f"Encrypted archive is truncated: {input_path}")
                    remaining -= len(chunk)
                    mac.update(chunk)
                    fout.write(decryptor.update(chunk))

                tag = fin.read(HMAC_LEN)
                try:
                    mac.verify(tag)
                except InvalidSignature as e:
                    raise ValueError("Invalid passphrase or corrupted archive") from e
                fout.write(decryptor.finalize())
            tmp_output.replace(output_path)
        finally:
            if tmp_output.exists():
                tmp_output.unlink()


def get_cipher(kind, key_id: Optional[str] = None, passphrase: Optional[str] = None,
               timeout: Optional[float] = None) -> ArchiveCipher:
    """Return the cipher for ``kind``; unknown kinds are a configuration error."""
    try:
        kind = EncryptionKind(kind)
    except ValueError:
        raise ConfigurationError(f"Unsupported encryption type: {kind}")

    if kind == EncryptionKind.ASYMMETRIC:
        return GpgCipher(key_id, timeout=timeout)
    if kind == EncryptionKind.SYMMETRIC:
        return PassphraseCipher(passphrase)
    return PassthroughCipher()
