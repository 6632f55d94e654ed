# tests/test_utils/test_aws.py
import pytest

from media_resolver.utils.aws import (
    S3AccessDenied,
    S3Client,
    S3StorageError,
    _normalize_key,
    parse_s3_uri,
    s3_uri,
)
from tests.fixtures.assets import BUCKET
from tests.fixtures.fakes import FakeS3Client


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("/videos//a.mp4", "videos/a.mp4"),
        ("  videos/a b.mp4 ", "videos/a b.mp4"),
    ],
)
def test_normalize_key(raw, expected):
    assert _normalize_key(raw) == expected


@pytest.mark.parametrize("raw", ["", "../etc/passwd", "videos/a?.mp4"])
def test_normalize_key_rejects_unsafe(raw):
    with pytest.raises(S3StorageError):
        _normalize_key(raw)


def test_s3_uri_round_trip():
    assert parse_s3_uri(s3_uri(BUCKET, "/videos/a.mp4")) == (BUCKET, "videos/a.mp4")


@pytest.mark.parametrize("uri", ["https://x/y", "s3://", "s3://bucket", "s3://bucket/"])
def test_parse_s3_uri_rejects(uri):
    with pytest.raises(S3StorageError):
        parse_s3_uri(uri)


def test_head_distinguishes_missing_forbidden_and_found():
    fake = FakeS3Client(
        {(BUCKET, "videos/a.mp4"): {"ContentLength": 1}},
        forbidden=[(BUCKET, "videos/secret.mp4")],
    )
    s3 = S3Client(BUCKET, client=fake)

    assert s3.head("videos/a.mp4") == {"ContentLength": 1}
    assert s3.head("videos/none.mp4") is None
    with pytest.raises(S3AccessDenied):
        s3.head("videos/secret.mp4")


def test_presigned_get_for_uri_uses_uri_bucket():
    s3 = S3Client("default-bucket", client=FakeS3Client())

    url = s3.presigned_get_for_uri(f"s3://{BUCKET}/videos/a.mp4", expires_in=120)

    assert url == f"https://{BUCKET}.s3.amazonaws.com/videos/a.mp4?X-Amz-Expires=120"
