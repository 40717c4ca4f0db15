"""Tests for the per-folder pipeline."""

from pathlib import Path
from unittest import mock

import pytest

from conftest import FakeUploader, write_files
from s3_archiver.ciphers import GpgCipher, PassphraseCipher, PassthroughCipher
from s3_archiver.codecs import Compressor, GzipCompressor, TarCompressor, ZstdCompressor
from s3_archiver.errors import StageFailure
from s3_archiver.models import FolderState, FolderTask, RunReport
from s3_archiver.pipeline import FolderPipeline


class StubCompressor(Compressor):
    """Writes a placeholder archive with the suffix of a real codec."""

    def __init__(self, suffix):
        super().__init__()
        self.suffix = suffix

    def _write(self, files, archive_path):
        archive_path.write_bytes(b"".join(f.read_bytes() for f in files))


class StubGpgCipher(GpgCipher):
    def encrypt(self, archive_path):
        output = archive_path.with_name(archive_path.name + self.suffix)
        output.write_bytes(b"gpg:" + archive_path.read_bytes())
        archive_path.unlink()
        return output


def make_task(base: Path, relative: str, names) -> FolderTask:
    folder = base.joinpath(*relative.split('/')) if relative else base
    write_files(folder, names)
    return FolderTask(path=folder, relative_path=relative,
                      files=sorted(folder / n for n in names))


def test_happy_path_uploads_and_cleans(tmp_path, staging, uploader):
    task = make_task(tmp_path / "base", "a", ["x.txt", "y.txt"])
    pipeline = FolderPipeline(staging, TarCompressor(), PassthroughCipher(), uploader)

    result = pipeline.process(task)

    assert result.state == FolderState.CLEANED
    assert result.remote_uri == "s3://test-bucket/a/a.tar"
    assert list(uploader.objects) == ["a/a.tar"]
    assert not (staging / "a" / "a.tar").exists()
    assert not (staging / "a").exists()


def test_empty_folder_is_skipped(tmp_path, staging, uploader):
    folder = tmp_path / "base" / "b"
    folder.mkdir(parents=True)
    pipeline = FolderPipeline(staging, TarCompressor(), PassthroughCipher(), uploader)

    result = pipeline.process(FolderTask(path=folder, relative_path="b", files=[]))

    assert result.state == FolderState.SKIPPED
    assert uploader.calls == []
    assert not staging.exists()


@pytest.mark.parametrize("compressor_cls", [TarCompressor, GzipCompressor, ZstdCompressor])
@pytest.mark.parametrize("cipher", [
    PassthroughCipher(),
    StubGpgCipher("key@example.com"),
    PassphraseCipher("secret", iterations=1000),
])
def test_remote_name_suffix_chain(tmp_path, staging, compressor_cls, cipher):
    task = make_task(tmp_path / "base", "photos/2024", ["img.raw"])
    uploader = FakeUploader()
    pipeline = FolderPipeline(staging, StubCompressor(compressor_cls.suffix), cipher, uploader,
                              key_prefix="archive")

    pipeline.process(task)

    expected = f"archive/photos/2024/2024{compressor_cls.suffix}{cipher.suffix}"
    assert list(uploader.objects) == [expected]


def test_base_directory_uses_its_own_name(tmp_path, staging, uploader):
    task = make_task(tmp_path / "base", "", ["root.txt"])
    pipeline = FolderPipeline(staging, TarCompressor(), PassthroughCipher(), uploader,
                              key_prefix="pre")

    pipeline.process(task)

    assert list(uploader.objects) == ["pre/base.tar"]


def test_upload_failure_keeps_artifact(tmp_path, staging):
    task = make_task(tmp_path / "base", "a", ["x.txt"])
    uploader = FakeUploader(fail_all=True)
    pipeline = FolderPipeline(staging, TarCompressor(), PassthroughCipher(), uploader)
    report = RunReport()

    with pytest.raises(StageFailure) as exc:
        pipeline.process(task, report)

    assert exc.value.stage == "upload"
    assert exc.value.path == staging / "a" / "a.tar"
    assert (staging / "a" / "a.tar").exists()
    assert "Error: Upload failed" in report.lines[-1]


def test_encrypt_failure_stops_before_upload(tmp_path, staging, uploader):
    task = make_task(tmp_path / "base", "a", ["x.txt"])
    cipher = GpgCipher("key@example.com")
    pipeline = FolderPipeline(staging, TarCompressor(), cipher, uploader)

    failure = StageFailure("encrypt", staging / "a" / "a.tar", "gpg exited with 2")
    with mock.patch.object(cipher, "encrypt", side_effect=failure):
        with pytest.raises(StageFailure):
            pipeline.process(task)

    assert uploader.calls == []
    assert (staging / "a" / "a.tar").exists()


def test_nested_staging_dirs_survive_parent_cleanup(tmp_path, staging, uploader):
    base = tmp_path / "base"
    parent = make_task(base, "p", ["1.txt"])
    child = make_task(base, "p/c", ["2.txt"])
    pipeline = FolderPipeline(staging, TarCompressor(), PassthroughCipher(), uploader)

    pipeline.process(parent)
    pipeline.process(child)

    assert sorted(uploader.objects) == ["p/c/c.tar", "p/p.tar"]
