"""Tests for the S3-compatible storage wrapper."""

from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError, ReadTimeoutError

from mediconnect_api.services.errors import StorageError
from mediconnect_api.services.storage import StorageService


@pytest.fixture
def s3_client():
    client = MagicMock()
    with patch("mediconnect_api.services.storage.boto3.client", return_value=client):
        yield client


def _service(**kwargs) -> StorageService:
    return StorageService(
        endpoint="http://minio:9000",
        access_key="minio",
        secret_key="miniosecret",
        bucket="documents",
        **kwargs,
    )


def test_existing_bucket_is_not_recreated(s3_client):
    _service()
    s3_client.head_bucket.assert_called_once_with(Bucket="documents")
    s3_client.create_bucket.assert_not_called()


def test_missing_bucket_is_created(s3_client):
    s3_client.head_bucket.side_effect = ClientError({"Error": {"Code": "404"}}, "HeadBucket")
    _service()
    s3_client.create_bucket.assert_called_once_with(Bucket="documents")


async def test_upload_keys_object_under_owner(s3_client):
    url = await _service().upload("patient-1", "visa-docs/passport-1.pdf", b"data", "application/pdf")

    s3_client.put_object.assert_called_once_with(
        Bucket="documents",
        Key="patient-1/visa-docs/passport-1.pdf",
        Body=b"data",
        ContentType="application/pdf",
    )
    assert url == "http://minio:9000/documents/patient-1/visa-docs/passport-1.pdf"


async def test_public_endpoint_overrides_url_base(s3_client):
    service = _service(public_endpoint="https://files.mediconnect.example/")
    url = await service.upload("patient-1", "a.pdf", b"x", "application/pdf")
    assert url == "https://files.mediconnect.example/documents/patient-1/a.pdf"


async def test_client_error_becomes_storage_error(s3_client):
    s3_client.put_object.side_effect = ClientError(
        {"Error": {"Code": "AccessDenied", "Message": "denied"}}, "PutObject",
    )
    with pytest.raises(StorageError, match="patient-1/a.pdf"):
        await _service().upload("patient-1", "a.pdf", b"x", "application/pdf")


async def test_timeout_becomes_storage_error(s3_client):
    s3_client.put_object.side_effect = ReadTimeoutError(endpoint_url="http://minio:9000")
    with pytest.raises(StorageError):
        await _service().upload("patient-1", "a.pdf", b"x", "application/pdf")


def test_document_path_uses_filename_extension():
    path = StorageService.build_document_path("passport", "Scan.PDF", "application/pdf")
    assert path.startswith("visa-docs/passport-")
    assert path.endswith(".pdf")


def test_document_path_falls_back_to_content_type_extension():
    path = StorageService.build_document_path("passport_photo", "", "image/jpeg")
    assert path.endswith(".jpg")


def test_document_path_drops_directory_components():
    path = StorageService.build_document_path("passport", "../../etc/passwd.png", "image/png")
    assert ".." not in path
    assert path.count("/") == 1


def test_letter_paths_are_unique():
    assert StorageService.build_letter_path(7) != StorageService.build_letter_path(7)
