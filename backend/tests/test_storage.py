import io
from datetime import datetime, timezone

import boto3
import pytest
from botocore.exceptions import ClientError
from botocore.response import StreamingBody
from botocore.stub import Stubber

from wallpaper_api.services.storage import ObjectStore


BUCKET = "wallpapers-test"


@pytest.fixture()
def s3():
    client = boto3.client(
        "s3",
        region_name="us-east-1",
        aws_access_key_id="test",
        aws_secret_access_key="test",
    )
    with Stubber(client) as stubber:
        yield client, stubber
        stubber.assert_no_pending_responses()


def _body(data: bytes) -> StreamingBody:
    return StreamingBody(io.BytesIO(data), len(data))


def test_get_returns_bytes_and_http_metadata(s3):
    client, stubber = s3
    stubber.add_response(
        "get_object",
        {
            "Body": _body(b"png-bytes"),
            "ETag": '"abc123"',
            "ContentType": "image/png",
            "ContentDisposition": 'inline; filename="k1.png"',
            "CacheControl": "no-cache",
        },
        {"Bucket": BUCKET, "Key": "k1"},
    )

    obj = ObjectStore(client, bucket=BUCKET).get("k1")

    assert obj is not None
    assert obj.body == b"png-bytes"
    assert obj.http_etag == '"abc123"'
    assert obj.http_metadata["Content-Type"] == "image/png"
    assert obj.http_metadata["Content-Disposition"] == 'inline; filename="k1.png"'
    assert "Cache-Control" not in obj.http_metadata


def test_get_missing_key_returns_none(s3):
    client, stubber = s3
    stubber.add_client_error("get_object", service_error_code="NoSuchKey", http_status_code=404)

    assert ObjectStore(client, bucket=BUCKET).get("missing") is None


def test_get_other_errors_propagate(s3):
    client, stubber = s3
    stubber.add_client_error("get_object", service_error_code="AccessDenied", http_status_code=403)

    with pytest.raises(ClientError):
        ObjectStore(client, bucket=BUCKET).get("k1")


def test_put_passes_content_type(s3):
    client, stubber = s3
    stubber.add_response(
        "put_object",
        {"ETag": '"abc123"'},
        {"Bucket": BUCKET, "Key": "k1", "Body": b"data", "ContentType": "image/jpeg"},
    )

    ObjectStore(client, bucket=BUCKET).put("k1", b"data", content_type="image/jpeg")


def test_delete_absent_object_is_not_an_error(s3):
    client, stubber = s3
    stubber.add_response("delete_object", {}, {"Bucket": BUCKET, "Key": "k1"})
    stubber.add_client_error("delete_object", service_error_code="NoSuchKey", http_status_code=404)

    store = ObjectStore(client, bucket=BUCKET)
    store.delete("k1")
    store.delete("k1")


def test_list_objects_follows_continuation_tokens(s3):
    client, stubber = s3
    lm = datetime(2024, 1, 1, tzinfo=timezone.utc)
    stubber.add_response(
        "list_objects_v2",
        {
            "Contents": [{"Key": "a", "LastModified": lm, "Size": 3}],
            "IsTruncated": True,
            "NextContinuationToken": "page-2",
        },
        {"Bucket": BUCKET, "Prefix": "", "MaxKeys": 1000},
    )
    stubber.add_response(
        "list_objects_v2",
        {
            "Contents": [{"Key": "b", "LastModified": lm, "Size": 5}],
            "IsTruncated": False,
        },
        {"Bucket": BUCKET, "Prefix": "", "MaxKeys": 1000, "ContinuationToken": "page-2"},
    )

    listed = list(ObjectStore(client, bucket=BUCKET).list_objects())

    assert [o.key for o in listed] == ["a", "b"]
    assert [o.size for o in listed] == [3, 5]
    assert listed[0].last_modified == lm
