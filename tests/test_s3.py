from pathlib import Path
from unittest import mock

import pytest
from boto3.exceptions import S3UploadFailedError
from botocore.exceptions import ClientError, EndpointConnectionError

from transcode.errors import StagingIOError, StorageNotFound, StorageUnavailable
from transcode.s3 import ObjectStager


def _client_error(code, op="HeadObject"):
    return ClientError({"Error": {"Code": code, "Message": code}}, op)


@pytest.fixture
def client():
    return mock.MagicMock()


@pytest.fixture
def presigner():
    return mock.MagicMock()


@pytest.fixture
def stager(client, presigner):
    return ObjectStager(client, "media-test", presign_client=presigner)


class TestFetchToLocal:

    def test_downloads_via_part_file_then_renames(self, stager, client, tmp_path):
        seen = []

        def fake_download(bucket, key, path):
            seen.append(path)
            Path(path).write_bytes(b"source")

        client.download_file.side_effect = fake_download
        dest = tmp_path / "job_input"

        stager.fetch_to_local("uploads/j_clip.mp4", dest)

        assert dest.read_bytes() == b"source"
        assert seen == [str(tmp_path / "job_input.part")]
        assert not (tmp_path / "job_input.part").exists()
        client.download_file.assert_called_once_with("media-test", "uploads/j_clip.mp4", seen[0])

    def test_missing_object_raises_not_found_and_cleans_up(self, stager, client, tmp_path):
        def partial_then_404(bucket, key, path):
            Path(path).write_bytes(b"half")
            raise _client_error("404")

        client.download_file.side_effect = partial_then_404
        dest = tmp_path / "job_input"

        with pytest.raises(StorageNotFound):
            stager.fetch_to_local("uploads/gone.mp4", dest)

        assert list(tmp_path.iterdir()) == []

    def test_other_client_errors_are_unavailable(self, stager, client, tmp_path):
        client.download_file.side_effect = _client_error("SlowDown", "GetObject")
        with pytest.raises(StorageUnavailable):
            stager.fetch_to_local("uploads/x.mp4", tmp_path / "in")

    def test_unreachable_endpoint_is_unavailable(self, stager, client, tmp_path):
        client.download_file.side_effect = EndpointConnectionError(endpoint_url="http://minio:9000")
        with pytest.raises(StorageUnavailable):
            stager.fetch_to_local("uploads/x.mp4", tmp_path / "in")

    def test_local_write_failure_is_io_error(self, stager, client, tmp_path):
        client.download_file.side_effect = PermissionError(13, "Permission denied")
        with pytest.raises(StagingIOError):
            stager.fetch_to_local("uploads/x.mp4", tmp_path / "in")


class TestPushFromLocal:

    def test_uploads_with_content_type(self, stager, client, tmp_path):
        src = tmp_path / "out.mp4"
        src.write_bytes(b"video")

        key = stager.push_from_local(src, "transcoded/j_clip.mp4", "video/mp4")

        assert key == "transcoded/j_clip.mp4"
        client.upload_file.assert_called_once_with(
            str(src), "media-test", "transcoded/j_clip.mp4", ExtraArgs={"ContentType": "video/mp4"}
        )

    def test_upload_failure_is_unavailable(self, stager, client, tmp_path):
        client.upload_file.side_effect = S3UploadFailedError("Failed to upload")
        with pytest.raises(StorageUnavailable):
            stager.push_from_local(tmp_path / "out.mp4", "transcoded/j.mp4", "video/mp4")

    def test_unreadable_source_is_io_error(self, stager, client, tmp_path):
        client.upload_file.side_effect = FileNotFoundError(2, "No such file", "out.mp4")
        with pytest.raises(StagingIOError):
            stager.push_from_local(tmp_path / "out.mp4", "transcoded/j.mp4")


class TestSignedRetrievalHandle:

    def test_presigns_existing_object_with_ttl(self, stager, client, presigner):
        presigner.generate_presigned_url.return_value = "http://public:9000/media-test/k?sig"

        url = stager.signed_retrieval_handle("transcoded/j.mp4", 300)

        assert url == "http://public:9000/media-test/k?sig"
        client.head_object.assert_called_once_with(Bucket="media-test", Key="transcoded/j.mp4")
        presigner.generate_presigned_url.assert_called_once_with(
            ClientMethod="get_object",
            Params={"Bucket": "media-test", "Key": "transcoded/j.mp4"},
            ExpiresIn=300,
            HttpMethod="GET",
        )

    def test_missing_object_is_not_found(self, stager, client, presigner):
        client.head_object.side_effect = _client_error("404")
        with pytest.raises(StorageNotFound):
            stager.signed_retrieval_handle("transcoded/none.mp4", 300)
        presigner.generate_presigned_url.assert_not_called()

    def test_empty_key_is_not_found(self, stager, presigner):
        with pytest.raises(StorageNotFound):
            stager.signed_retrieval_handle("", 300)

    def test_unreachable_storage_is_unavailable(self, stager, client):
        client.head_object.side_effect = EndpointConnectionError(endpoint_url="http://minio:9000")
        with pytest.raises(StorageUnavailable):
            stager.signed_retrieval_handle("transcoded/j.mp4", 300)


def test_from_settings_uses_public_endpoint_for_presigning(settings):
    settings.S3_ENDPOINT_URL = "http://minio:9000"
    settings.S3_PUBLIC_ENDPOINT = "http://localhost:9000"
    settings.S3_BUCKET = "bucket-x"
    settings.S3_ACCESS_KEY = "key"
    settings.S3_SECRET_KEY = "secret"

    stager = ObjectStager.from_settings()

    assert stager.bucket == "bucket-x"
    assert stager.client.meta.endpoint_url == "http://minio:9000"
    assert stager.presign_client.meta.endpoint_url == "http://localhost:9000"
