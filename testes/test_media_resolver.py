import asyncio
import os
import sys

# Ensure project root is on sys.path for imports when running tests directly
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

import aiohttp
import pytest

from site_migrator.migrators.media_resolver import MediaResolver
from site_migrator.migrators.storage import Download, StorageBackend, StoredObject
from site_migrator.store.content_store import ContentStore
from site_migrator.utils.errors import StorageError
from site_migrator.utils.retry import DOWNLOAD_POLICY, policy_with_delays


UP = "https://carlagannis.com/blog/wp-content/uploads/2019/07"
NO_WAIT = policy_with_delays(DOWNLOAD_POLICY, (0.0,))


class FakeBackend(StorageBackend):
    provider = "blob"

    def __init__(self, existing=None, fail_upload=False):
        super().__init__("blog")
        self.uploads = []
        self.existing = existing or {}
        self.fail_upload = fail_upload

    def owns_url(self, url):
        return url.startswith("https://store.example/")

    async def exists(self, key):
        return self.existing.get(key)

    async def upload(self, key, download):
        if self.fail_upload:
            raise StorageError("quota exceeded")
        data = await download.read()
        self.uploads.append(key)
        return StoredObject(key=key, url=f"https://store.example/{key}", size=len(data), mime_type=download.content_type)

    async def delete(self, asset):
        pass


class FakeFetch:
    def __init__(self, responses):
        self.responses = responses
        self.calls = []

    async def __call__(self, url):
        self.calls.append(url)
        answer = self.responses[url]
        if isinstance(answer, list):
            answer = answer.pop(0)
        if isinstance(answer, Exception):
            raise answer
        status, body = answer
        return Download.from_bytes(url, body, status=status, content_type="image/jpeg")


@pytest.fixture
def store():
    with ContentStore(":memory:") as s:
        yield s


@pytest.fixture(autouse=True)
def _reports_in_tmp(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)


def test_resolving_twice_uploads_once(store):
    backend = FakeBackend()
    fetch = FakeFetch({f"{UP}/photo.jpg": (200, b"jpeg-bytes")})
    resolver = MediaResolver(store, backend, fetch, policy=NO_WAIT)

    first = asyncio.run(resolver.resolve(f"{UP}/photo.jpg"))
    second = asyncio.run(resolver.resolve(f"{UP}/photo.jpg"))

    assert first == second == "https://store.example/blog/wp-content/uploads/2019/07/photo.jpg"
    assert backend.uploads == ["blog/wp-content/uploads/2019/07/photo.jpg"]
    assert len(store.list_media()) == 1
    assert resolver.uploaded == 1


def test_size_variants_share_one_asset(store):
    backend = FakeBackend()
    fetch = FakeFetch({f"{UP}/photo.jpg": (200, b"x" * 10)})
    resolver = MediaResolver(store, backend, fetch, policy=NO_WAIT)

    a = asyncio.run(resolver.ensure(f"{UP}/photo-150x150.jpg"))
    b = asyncio.run(resolver.ensure(f"{UP}/photo-1024x768.jpg"))

    assert a.created and not b.created
    assert a.url == b.url
    assets = store.list_media()
    assert len(assets) == 1
    assert assets[0].source_url.endswith("photo.jpg")
    assert assets[0].bytes == 10
    assert fetch.calls == [f"{UP}/photo.jpg"]


def test_non_2xx_is_a_permanent_skip_without_retry(store):
    fetch = FakeFetch({f"{UP}/gone.jpg": (404, b"")})
    resolver = MediaResolver(store, FakeBackend(), fetch, policy=NO_WAIT)

    assert asyncio.run(resolver.resolve(f"{UP}/gone.jpg")) is None
    assert fetch.calls == [f"{UP}/gone.jpg"]
    assert store.list_media() == []


def test_transport_errors_are_retried(store):
    url = f"{UP}/flaky.jpg"
    fetch = FakeFetch({url: [aiohttp.ClientConnectionError("reset"), asyncio.TimeoutError(), (200, b"ok")]})
    resolver = MediaResolver(store, FakeBackend(), fetch, policy=NO_WAIT)

    assert asyncio.run(resolver.resolve(url)) is not None
    assert len(fetch.calls) == 3


def test_fetch_giving_up_yields_none(store):
    url = f"{UP}/down.jpg"
    fetch = FakeFetch({url: [aiohttp.ClientConnectionError("x")] * 3})
    resolver = MediaResolver(store, FakeBackend(), fetch, policy=NO_WAIT)

    assert asyncio.run(resolver.resolve(url)) is None
    assert len(fetch.calls) == 3


def test_upload_failure_yields_none(store):
    fetch = FakeFetch({f"{UP}/a.jpg": (200, b"a")})
    resolver = MediaResolver(store, FakeBackend(fail_upload=True), fetch, policy=NO_WAIT)

    assert asyncio.run(resolver.resolve(f"{UP}/a.jpg")) is None
    assert store.list_media() == []


def test_stale_record_is_resolved_again(store):
    store.save_media(
        source_url=f"{UP}/old.jpg", provider="blob", url="https://legacy-cdn.example/old.jpg", filename="old.jpg"
    )
    backend = FakeBackend()
    fetch = FakeFetch({f"{UP}/old.jpg": (200, b"old")})
    resolver = MediaResolver(store, backend, fetch, policy=NO_WAIT)

    resolution = asyncio.run(resolver.ensure(f"{UP}/old.jpg"))

    assert resolution.created
    assets = store.list_media()
    assert len(assets) == 1
    assert assets[0].url == resolution.url
    assert assets[0].bytes == 3


def test_object_surviving_a_lost_record_is_reused(store):
    key = "blog/wp-content/uploads/2019/07/kept.jpg"
    stored = StoredObject(key=key, url=f"https://store.example/{key}", size=99, mime_type="image/jpeg")
    backend = FakeBackend(existing={key: stored})
    fetch = FakeFetch({})
    resolver = MediaResolver(store, backend, fetch, policy=NO_WAIT)

    resolution = asyncio.run(resolver.ensure(f"{UP}/kept-300x300.jpg"))

    assert resolution.url == stored.url and not resolution.created
    assert fetch.calls == [] and backend.uploads == []
    asset = store.find_media(f"{UP}/kept.jpg", "blob")
    assert asset is not None and asset.bytes == 99 and asset.key == key
