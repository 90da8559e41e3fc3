from pathlib import Path
from uuid import uuid4

import pytest

from transcode.errors import StorageNotFound, StorageUnavailable
from transcode.models import Job
from transcode.pipeline import PipelineContext
from transcode.scratch import ScratchSpace
from transcode.utils import input_key


class FakeStager:
    """In-memory bucket with the same surface as ObjectStager."""

    def __init__(self):
        self.objects: dict[str, bytes] = {}
        self.push_error: Exception | None = None
        self.pushed: list[tuple[str, str]] = []

    def fetch_to_local(self, key, dest):
        if key not in self.objects:
            raise StorageNotFound(f"s3://{key} does not exist")
        Path(dest).write_bytes(self.objects[key])
        return Path(dest)

    def push_from_local(self, source, key, content_type=None):
        if self.push_error is not None:
            raise self.push_error
        self.objects[key] = Path(source).read_bytes()
        self.pushed.append((key, content_type))
        return key

    def put_fileobj(self, fileobj, key, content_type=None):
        if self.push_error is not None:
            raise self.push_error
        self.objects[key] = fileobj.read()
        return key

    def exists(self, key):
        return key in self.objects

    def signed_retrieval_handle(self, key, ttl):
        if key not in self.objects:
            raise StorageNotFound(f"s3://{key} does not exist")
        return f"https://storage.example/{key}?expires={ttl}"


class FakeEncoder:
    def __init__(self, error: Exception | None = None):
        self.error = error
        self.calls: list[tuple[Path, Path, str]] = []

    def encode(self, input_path, output_path, fmt):
        self.calls.append((Path(input_path), Path(output_path), fmt))
        assert Path(input_path).is_file(), "source should be staged before encoding"
        # leave a partial file behind so cleanup is exercised on failure too
        Path(output_path).write_bytes(b"partial")
        if self.error is not None:
            raise self.error
        Path(output_path).write_bytes(b"encoded:" + Path(input_path).read_bytes())


@pytest.fixture
def stager():
    return FakeStager()


@pytest.fixture
def encoder():
    return FakeEncoder()


@pytest.fixture
def scratch(tmp_path):
    return ScratchSpace(tmp_path / "scratch")


@pytest.fixture
def ctx(stager, encoder, scratch):
    return PipelineContext(stager=stager, encoder=encoder, scratch=scratch)


@pytest.fixture
def dispatched(monkeypatch):
    """Capture Celery dispatches instead of talking to a broker."""
    calls = []

    def fake_dispatch(job_id, attempt):
        calls.append((str(job_id), attempt))
        return f"task-{job_id}-{attempt}"

    monkeypatch.setattr("transcode.pipeline._dispatch", fake_dispatch)
    return calls


@pytest.fixture
def make_job(stager):
    def _make(owner="alice", name="clip.mp4", status=Job.Status.UPLOADED, **fields):
        job_id = uuid4()
        key = input_key(job_id, name)
        stager.objects[key] = b"source-bytes"
        return Job.objects.create(
            id=job_id,
            owner=owner,
            original_name=name,
            source_key=key,
            status=status,
            **fields,
        )

    return _make


@pytest.fixture
def unavailable():
    return StorageUnavailable("S3 unreachable")
