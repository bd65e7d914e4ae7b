"""
Tests for the media store. Downloads go through an httpx mock transport.
"""

import httpx
import pytest
from django.core.files.storage import default_storage

from importer.exceptions import MediaStoreError
from importer.services.media_store import MediaStore, storage_name


def mock_client(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def test_storage_name():
    name = storage_name("job-1", "https://cdn.shop.example/img/Widget Photo.JPG?v=3")
    assert name.startswith("imports/job-1/")
    assert name.endswith("-Widget-Photo.JPG")
    assert storage_name("job-1", "https://cdn.shop.example/").endswith("-file")


def test_storage_name_is_stable_per_source():
    a = storage_name("job-1", "https://cdn.shop.example/a.jpg")
    assert a == storage_name("job-1", "https://cdn.shop.example/a.jpg")
    assert a != storage_name("job-1", "https://cdn.shop.example/x/a.jpg")


class TestStoreRemote:
    async def test_downloads_once_and_returns_media_url(self):
        requests = []

        def handler(request):
            requests.append(str(request.url))
            return httpx.Response(200, content=b"\x89PNG data")

        store = MediaStore("job-media-1")
        store._client = mock_client(handler)
        try:
            url = await store.store_remote("https://cdn.shop.example/widget.png")
            again = await store.store_remote("https://cdn.shop.example/widget.png")
        finally:
            await store.close()

        assert url == again
        assert url.startswith("/media/imports/job-media-1/")
        assert requests == ["https://cdn.shop.example/widget.png"]
        name = storage_name("job-media-1", "https://cdn.shop.example/widget.png")
        assert default_storage.exists(name)

    async def test_http_error_raises(self):
        store = MediaStore("job-media-2")
        store._client = mock_client(lambda request: httpx.Response(404))
        try:
            with pytest.raises(MediaStoreError):
                await store.store_remote("https://cdn.shop.example/missing.png")
        finally:
            await store.close()

    async def test_oversized_file_raises(self):
        store = MediaStore("job-media-3")
        store.MAX_BYTES = 4
        store._client = mock_client(lambda request: httpx.Response(200, content=b"too large"))
        try:
            with pytest.raises(MediaStoreError):
                await store.store_remote("https://cdn.shop.example/huge.png")
        finally:
            await store.close()

    async def test_store_bytes(self):
        store = MediaStore("job-media-4")
        url = await store.store_bytes(b"body { margin: 0 }", "theme.css")
        assert url.startswith("/media/imports/job-media-4/")
        assert url.endswith("-theme.css")
