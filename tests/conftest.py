"""Shared pytest fixtures for wxdump tests."""

import sys

import pytest
from PyQt6.QtCore import QCoreApplication
from PyQt6.QtGui import QColor, QImage

from wxdump.core.cache import MediaCache
from wxdump.core.resources import ResourceConfig
from wxdump.media.processor import ImageProcessor


@pytest.fixture(scope="session", autouse=True)
def qt_app():
    """Image format plugins are loaded through the application instance."""
    app = QCoreApplication.instance()
    if app is None:
        app = QCoreApplication(sys.argv[:1])
    yield app


# ============================================================================
# Resource tree
# ============================================================================

@pytest.fixture
def resource_root(tmp_path):
    root = tmp_path / "MicroMsg" / "account"
    for sub in ("image2", "image", "emoji", "voice2", "video", "avatar", "sfs"):
        (root / sub).mkdir(parents=True)
    return root


@pytest.fixture
def resources(resource_root):
    return ResourceConfig(resource_root, avatar_index=resource_root / "sfs" / "avatar.index")


@pytest.fixture
def media_cache(tmp_path):
    cache = MediaCache(tmp_path / "media.cache")
    cache.load()
    return cache


# ============================================================================
# Images
# ============================================================================

@pytest.fixture
def processor():
    return ImageProcessor()


def make_image(color: str = "red", size: int = 8) -> QImage:
    img = QImage(size, size, QImage.Format.Format_RGB32)
    img.fill(QColor(color))
    return img


@pytest.fixture
def png_bytes(processor):
    return processor.encode_png(make_image("red"))


@pytest.fixture
def jpeg_bytes(processor):
    return processor.encode_jpeg(make_image("blue"))


# ============================================================================
# Fakes
# ============================================================================

class FakeResponse:
    def __init__(self, content: bytes = b"", status_code: int = 200):
        self.content = content
        self.status_code = status_code

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


class FakeSession:
    """Serves canned responses by URL and records requests."""

    def __init__(self, routes=None):
        self.routes = dict(routes or {})
        self.requested = []

    def get(self, url, **kwargs):
        self.requested.append(url)
        route = self.routes.get(url)
        if route is None:
            return FakeResponse(b"", 404)
        if isinstance(route, Exception):
            raise route
        if isinstance(route, FakeResponse):
            return route
        return FakeResponse(route)

    def close(self):
        pass


@pytest.fixture
def fake_session():
    return FakeSession()
