import asyncio
import os
import sys

# Ensure project root is on sys.path for imports when running tests directly
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

import pytest
pytest.importorskip("boto3")

from botocore.exceptions import ClientError

from site_migrator.migrators.s3_storage import S3Storage
from site_migrator.migrators.storage import Download
from site_migrator.models.content import MediaAsset
from site_migrator.utils.errors import RateLimitedError, StorageError


def client_error(code, operation):
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


class FakeS3Client:
    def __init__(self):
        self.objects = {}
        self.uploads = []
        self.delete_error = None

    def head_object(self, Bucket, Key):
        if Key not in self.objects:
            raise client_error("404", "HeadObject")
        data, content_type = self.objects[Key]
        return {"ContentLength": len(data), "ContentType": content_type}

    def upload_fileobj(self, Fileobj, Bucket, Key, ExtraArgs=None, Config=None):
        data = Fileobj.read()
        self.objects[Key] = (data, (ExtraArgs or {}).get("ContentType"))
        self.uploads.append((Bucket, Key, Config.multipart_chunksize))

    def delete_object(self, Bucket, Key):
        if self.delete_error is not None:
            raise self.delete_error
        self.objects.pop(Key, None)


def storage(client, **kwargs):
    return S3Storage(bucket="media", region="eu-west-1", client=client, part_size=5 * 1024 * 1024, **kwargs)


def test_public_urls():
    s3 = storage(FakeS3Client())
    assert s3.public_url("blog/a.jpg") == "https://media.s3.eu-west-1.amazonaws.com/blog/a.jpg"
    assert s3.owns_url("https://media.s3.eu-west-1.amazonaws.com/blog/a.jpg")
    assert not s3.owns_url("https://blob.example/blog/a.jpg")

    cdn = storage(FakeS3Client(), public_base_url="https://cdn.example/")
    assert cdn.public_url("blog/a.jpg") == "https://cdn.example/blog/a.jpg"
    assert cdn.key_from_url("https://cdn.example/blog/a.jpg") == "blog/a.jpg"


def test_missing_object_is_none_and_upload_then_exists():
    client = FakeS3Client()
    s3 = storage(client)
    key = s3.object_key("wp-content/uploads/2018/02/photo.jpg")
    assert key == "blog/wp-content/uploads/2018/02/photo.jpg"
    assert asyncio.run(s3.exists(key)) is None

    download = Download.from_bytes("https://legacy/photo.jpg", b"x" * 3000, content_type="image/jpeg")
    stored = asyncio.run(s3.upload(key, download))
    assert stored.size == 3000
    assert client.uploads == [("media", key, 5 * 1024 * 1024)]

    found = asyncio.run(s3.exists(key))
    assert found.size == 3000 and found.mime_type == "image/jpeg"
    assert found.url == stored.url


def test_head_errors_other_than_missing_raise():
    class ForbiddenClient(FakeS3Client):
        def head_object(self, Bucket, Key):
            raise client_error("403", "HeadObject")

    client = ForbiddenClient()
    with pytest.raises(StorageError):
        asyncio.run(storage(client).exists("blog/a.jpg"))


def test_throttled_delete_is_rate_limited():
    client = FakeS3Client()
    s3 = storage(client)
    media = MediaAsset(
        id="1", source_url="https://legacy/a.mp4", provider="s3", key="blog/a.mp4",
        url=s3.public_url("blog/a.mp4"), filename="a.mp4",
    )
    client.delete_error = client_error("SlowDown", "DeleteObject")
    with pytest.raises(RateLimitedError):
        asyncio.run(s3.delete(media))

    client.delete_error = client_error("AccessDenied", "DeleteObject")
    with pytest.raises(StorageError) as excinfo:
        asyncio.run(s3.delete(media))
    assert not isinstance(excinfo.value, RateLimitedError)


def test_delete_falls_back_to_the_key_in_the_url():
    client = FakeS3Client()
    client.objects["blog/a.mp4"] = (b"", None)
    s3 = storage(client)
    media = MediaAsset(
        id="1", source_url="https://legacy/a.mp4", provider="s3",
        url=s3.public_url("blog/a.mp4"), filename="a.mp4",
    )
    asyncio.run(s3.delete(media))
    assert client.objects == {}
