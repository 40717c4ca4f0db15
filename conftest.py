"""Shared pytest fixtures: in-memory uploader and sample directory trees."""

import logging
from pathlib import Path

import pytest

from s3_archiver.uploader import UploadResult, Uploader


class FakeUploader(Uploader):
    """Records uploads in memory; fails for keys listed in ``fail_keys``."""

    def __init__(self, bucket='test-bucket', fail_keys=(), fail_all=False, **kwargs):
        self.bucket = bucket
        self.fail_keys = set(fail_keys)
        self.fail_all = fail_all
        self.objects = {}
        self.calls = []

    def upload(self, local_path: Path, key: str) -> UploadResult:
        self.calls.append(key)
        if self.fail_all or key in self.fail_keys:
            return UploadResult(success=False, uri=self.uri_for(key), error="simulated network error")
        self.objects[key] = local_path.read_bytes()
        return UploadResult(success=True, uri=self.uri_for(key), etag='fake-etag')


def write_files(folder: Path, names):
    folder.mkdir(parents=True, exist_ok=True)
    for name in names:
        (folder / name).write_text(f"contents of {name}\n")


@pytest.fixture
def uploader():
    return FakeUploader()


@pytest.fixture
def sample_tree(tmp_path):
    """base/{a: x.txt y.txt, b: empty, c: z.txt}"""
    base = tmp_path / "base"
    write_files(base / "a", ["x.txt", "y.txt"])
    (base / "b").mkdir(parents=True)
    write_files(base / "c", ["z.txt"])
    return base


@pytest.fixture
def staging(tmp_path):
    return tmp_path / "staging"


@pytest.fixture(autouse=True)
def restore_root_logging():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers = handlers
    root.setLevel(level)
