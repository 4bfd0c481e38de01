import asyncio
import os
import sys
from datetime import datetime, timedelta

# Ensure project root is on sys.path for imports when running tests directly
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

import pytest

from site_migrator.migrators.blob_pruner import is_video, prune, select_candidates
from site_migrator.migrators.storage import StorageBackend
from site_migrator.models.content import MediaAsset
from site_migrator.store.content_store import ContentStore
from site_migrator.utils.errors import RateLimitedError, StorageError
from site_migrator.utils.retry import RATE_LIMIT_POLICY, policy_with_delays

UP = "https://carlagannis.com/blog/wp-content/uploads/2019/05"
NO_WAIT = policy_with_delays(RATE_LIMIT_POLICY, [0])
T0 = datetime(2024, 1, 1)


def asset(name, size, *, mime=None, age=0, source=None):
    return MediaAsset(
        id=name,
        source_url=source or f"{UP}/{name}",
        provider="blob",
        url=f"https://store.example/{name}",
        filename=name,
        mime_type=mime,
        bytes=size,
        created_at=T0 - timedelta(days=age),
    )


class ScriptedBackend(StorageBackend):
    provider = "blob"

    def __init__(self, failures=None):
        super().__init__("blog")
        self.failures = {k: list(v) for k, v in (failures or {}).items()}
        self.calls = []

    def owns_url(self, url):
        return url.startswith("https://store.example/")

    async def upload(self, key, download):
        raise NotImplementedError

    async def delete(self, media):
        self.calls.append(media.filename)
        pending = self.failures.get(media.filename)
        if pending:
            raise pending.pop(0)


@pytest.fixture
def store():
    with ContentStore(":memory:") as s:
        yield s


@pytest.fixture(autouse=True)
def _reports_in_tmp(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)


def add(store, name, size, mime):
    store.save_media(
        source_url=f"{UP}/{name}",
        provider="blob",
        url=f"https://store.example/{name}",
        filename=name,
        mime_type=mime,
        size=size,
    )


def test_is_video():
    assert is_video(asset("a.mov", 1, mime="video/quicktime"))
    assert is_video(asset("clip.MP4", 1))
    assert not is_video(asset("a.jpg", 1, mime="image/jpeg"))


def test_candidates_are_largest_then_newest_first():
    assets = [
        asset("old.mp4", 100, mime="video/mp4", age=5),
        asset("new.mp4", 100, mime="video/mp4", age=1),
        asset("big.mp4", 500, mime="video/mp4", age=9),
        asset("photo.jpg", 900, mime="image/jpeg"),
    ]
    assert [a.filename for a in select_candidates(assets, "videos")] == ["big.mp4", "new.mp4", "old.mp4"]
    assert [a.filename for a in select_candidates(assets, "largest")][0] == "photo.jpg"


def test_variant_mode_only_picks_non_canonical_sources():
    assets = [
        asset("photo-300x200.jpg", 10),
        asset("photo.jpg", 50),
        asset("photo-scaled.jpg", 20),
    ]
    assert [a.filename for a in select_candidates(assets, "variants")] == ["photo-scaled.jpg", "photo-300x200.jpg"]


def test_unknown_mode_is_rejected():
    with pytest.raises(ValueError):
        select_candidates([], "everything")


def test_prune_stops_once_the_target_is_reached(store):
    add(store, "a.mp4", 300, "video/mp4")
    add(store, "b.mp4", 200, "video/mp4")
    add(store, "c.mp4", 100, "video/mp4")
    backend = ScriptedBackend()

    result = asyncio.run(prune(store, backend, target_free_bytes=450, policy=NO_WAIT))

    assert result.freed == 500
    assert backend.calls == ["a.mp4", "b.mp4"]
    assert [a.filename for a in store.list_media()] == ["c.mp4"]


def test_rate_limited_delete_is_retried(store):
    add(store, "a.mp4", 300, "video/mp4")
    backend = ScriptedBackend({"a.mp4": [RateLimitedError("429"), RateLimitedError("429")]})

    result = asyncio.run(prune(store, backend, target_free_bytes=1, policy=NO_WAIT))

    assert backend.calls == ["a.mp4"] * 3
    assert result.deleted == ["https://store.example/a.mp4"]
    assert store.list_media() == []


def test_other_delete_errors_abandon_the_asset(store):
    add(store, "a.mp4", 300, "video/mp4")
    add(store, "b.mp4", 200, "video/mp4")
    backend = ScriptedBackend({"a.mp4": [StorageError("forbidden")]})

    result = asyncio.run(prune(store, backend, target_free_bytes=100, policy=NO_WAIT))

    assert result.failed == ["https://store.example/a.mp4"]
    assert result.deleted == ["https://store.example/b.mp4"]
    assert result.freed == 200
    assert [a.filename for a in store.list_media()] == ["a.mp4"]
