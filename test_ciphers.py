"""Tests for the cipher providers."""

import os
import shutil
import subprocess
import tempfile
from pathlib import Path
from unittest import mock

import pytest

from s3_archiver.ciphers import (
    GpgCipher,
    PassphraseCipher,
    PassthroughCipher,
    decrypt_file,
    encrypt_file,
    get_cipher,
)
from s3_archiver.errors import ConfigurationError, StageFailure


@pytest.fixture
def archive(tmp_path):
    path = tmp_path / "folder.tar.zst"
    path.write_bytes(bytes(range(256)) * 4000 + b"tail")
    return path


def test_passthrough_returns_archive_unchanged(archive):
    data = archive.read_bytes()
    assert PassthroughCipher().encrypt(archive) == archive
    assert archive.read_bytes() == data


def test_symmetric_round_trip(archive, tmp_path):
    original = archive.read_bytes()
    artifact = PassphraseCipher("correct horse", iterations=1000).encrypt(archive)

    assert artifact.name == "folder.tar.zst.enc"
    assert not archive.exists()
    assert artifact.read_bytes() != original

    restored = tmp_path / "restored.tar.zst"
    decrypt_file(artifact, restored, "correct horse")
    assert restored.read_bytes() == original


def test_symmetric_uses_random_salt(tmp_path):
    src = tmp_path / "a.tar"
    src.write_bytes(b"same input")
    encrypt_file(src, tmp_path / "one.enc", "pw", iterations=1000)
    encrypt_file(src, tmp_path / "two.enc", "pw", iterations=1000)
    assert (tmp_path / "one.enc").read_bytes() != (tmp_path / "two.enc").read_bytes()


def test_symmetric_wrong_passphrase(archive, tmp_path):
    artifact = PassphraseCipher("right", iterations=1000).encrypt(archive)
    with pytest.raises(ValueError, match="Invalid passphrase"):
        decrypt_file(artifact, tmp_path / "out", "wrong")
    assert not (tmp_path / "out").exists()


def test_decrypt_rejects_foreign_file(tmp_path):
    other = tmp_path / "plain.tar"
    other.write_bytes(b"not encrypted at all, just some bytes here")
    with pytest.raises(ValueError, match="Not an encrypted archive"):
        decrypt_file(other, tmp_path / "out", "pw")


def test_symmetric_requires_passphrase(archive):
    with pytest.raises(ConfigurationError):
        PassphraseCipher("").encrypt(archive)
    assert archive.exists()


def test_gpg_requires_key_before_running_gpg(archive):
    with mock.patch("s3_archiver.codecs.subprocess.run") as run:
        with pytest.raises(ConfigurationError, match="GPG key is required"):
            GpgCipher(None).encrypt(archive)
    run.assert_not_called()


def _fake_gpg(returncode=0):
    def run(cmd, **kwargs):
        if returncode == 0:
            output = Path(cmd[cmd.index("--output") + 1])
            output.write_bytes(b"-----gpg-----" + Path(cmd[-1]).read_bytes())
            return subprocess.CompletedProcess(cmd, 0, b"", b"")
        return subprocess.CompletedProcess(cmd, returncode, b"", b"gpg: public key not found")
    return run


def test_gpg_encrypt_appends_suffix_and_removes_plaintext(archive):
    with mock.patch("s3_archiver.codecs.subprocess.run", side_effect=_fake_gpg()) as run:
        artifact = GpgCipher("backup@example.com").encrypt(archive)

    assert artifact.name == "folder.tar.zst.gpg"
    assert artifact.exists()
    assert not archive.exists()
    cmd = run.call_args[0][0]
    assert cmd[cmd.index("--recipient") + 1] == "backup@example.com"
    assert "--encrypt" in cmd


def test_gpg_failure_is_stage_failure_and_keeps_archive(archive):
    with mock.patch("s3_archiver.codecs.subprocess.run", side_effect=_fake_gpg(returncode=2)):
        with pytest.raises(StageFailure) as exc:
            GpgCipher("unknown@example.com").encrypt(archive)

    assert exc.value.stage == "encrypt"
    assert exc.value.path == archive
    assert archive.exists()


@pytest.mark.parametrize("kind,cls", [
    ("none", PassthroughCipher),
    ("asymmetric", GpgCipher),
    ("symmetric", PassphraseCipher),
])
def test_get_cipher(kind, cls):
    assert isinstance(get_cipher(kind, key_id="k", passphrase="p"), cls)


def test_get_cipher_rejects_unknown_kind():
    with pytest.raises(ConfigurationError, match="Unsupported encryption type: rot13"):
        get_cipher("rot13")


@pytest.fixture
def gnupg_home(monkeypatch):
    """Throwaway keyring holding one unprotected key pair."""
    if shutil.which("gpg") is None:
        pytest.skip("gpg is not installed")
    # short path keeps the gpg-agent socket name within limits
    home = tempfile.mkdtemp(prefix="gpg")
    os.chmod(home, 0o700)
    monkeypatch.setenv("GNUPGHOME", home)
    uid = "Archive Test <archive-test@example.com>"
    result = subprocess.run(
        ["gpg", "--batch", "--pinentry-mode", "loopback", "--passphrase", "",
         "--quick-gen-key", uid, "default", "default", "never"],
        capture_output=True,
    )
    if result.returncode != 0:
        shutil.rmtree(home, ignore_errors=True)
        pytest.skip(f"cannot create a gpg key: {result.stderr.decode(errors='replace')}")
    yield "archive-test@example.com"
    if shutil.which("gpgconf"):
        subprocess.run(["gpgconf", "--kill", "gpg-agent"], capture_output=True)
    shutil.rmtree(home, ignore_errors=True)


def test_gpg_round_trip_with_private_key(archive, gnupg_home):
    data = archive.read_bytes()

    artifact = GpgCipher(gnupg_home).encrypt(archive)

    assert artifact.read_bytes() != data
    restored = archive.with_name("restored.tar.zst")
    subprocess.run(
        ["gpg", "--batch", "--pinentry-mode", "loopback", "--passphrase", "",
         "--output", str(restored), "--decrypt", str(artifact)],
        check=True, capture_output=True,
    )
    assert restored.read_bytes() == data
