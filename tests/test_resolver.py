import threading
from pathlib import Path

import pytest

from wxdump.core import context as context_mod
from wxdump.core.context import CoreContext
from wxdump.core.dto.media import MediaFormat, MediaKind, MediaRequest, MediaResult
from wxdump.core.errors import Unavailable
from wxdump.core.resolver import ResourceResolver
from wxdump.core.settings import SettingsStore
from wxdump.media.content import text_digest


class FakeVoice:
    """Stands in for VoiceTranscoder; optionally blocks until released."""

    def __init__(self, gate: threading.Event = None, error: Exception = None):
        self.gate = gate
        self.error = error
        self.paths = []
        self.lock = threading.Lock()

    def transcode_result(self, path):
        if self.gate is not None:
            self.gate.wait(5)
        with self.lock:
            self.paths.append(Path(path))
        if self.error is not None:
            raise self.error
        return MediaResult(payload=b"ID3", format=MediaFormat.MP3, duration_ms=1200, source_path=str(path))


@pytest.fixture
def make_resolver(resources, media_cache, processor):
    created = []

    def factory(**kwargs):
        resolver = ResourceResolver(resources, media_cache, processor=processor, **kwargs)
        created.append(resolver)
        return resolver

    yield factory
    for resolver in created:
        resolver.close()


def test_voice_path_is_sharded_by_key_digest(make_resolver, resource_root) -> None:
    resolver = make_resolver()
    m = text_digest("1234abcd")
    assert resolver.voice_path("1234abcd") == resource_root / "voice2" / m[0:2] / m[2:4] / "msg_1234abcd.amr"
    assert resolver.voice_path("wcf://voice2/aa/bb/msg_x.amr") == resource_root / "voice2" / "aa" / "bb" / "msg_x.amr"


def test_dispatch_voice(make_resolver) -> None:
    voice = FakeVoice()
    result = make_resolver(voice=voice).resolve(MediaRequest(MediaKind.VOICE, "1234abcd"))
    assert result.format is MediaFormat.MP3
    assert result.duration_ms == 1200
    assert voice.paths[0].name == "msg_1234abcd.amr"


def test_prefetched_voice_is_awaited(make_resolver) -> None:
    gate = threading.Event()
    voice = FakeVoice(gate=gate)
    resolver = make_resolver(voice=voice)

    assert resolver.prefetch_voices(["k1", "k2", "k1", ""]) == 2
    assert resolver.prefetch_voices(["k1"]) == 0
    gate.set()

    assert resolver.resolve(MediaRequest(MediaKind.VOICE, "k1")).found
    assert resolver.resolve(MediaRequest(MediaKind.VOICE, "k2")).found
    assert sorted(p.name for p in voice.paths) == ["msg_k1.amr", "msg_k2.amr"]


def test_voice_failures_are_misses(make_resolver, caplog) -> None:
    resolver = make_resolver(voice=FakeVoice(error=Unavailable("ffmpeg not found on PATH")))
    for _ in range(3):
        assert not resolver.resolve_voice("k1").found
    warnings = [r for r in caplog.records if "ffmpeg not found" in r.getMessage()]
    assert len(warnings) == 1


def test_dispatch_video_and_emoji(make_resolver, resource_root, media_cache) -> None:
    (resource_root / "video" / "77.mp4").write_bytes(b"\x00\x00\x00\x18ftyp")
    media_cache.put("d1", b"GIF89a", MediaFormat.GIF)
    resolver = make_resolver()

    assert resolver.resolve(MediaRequest(MediaKind.VIDEO, "77")).format is MediaFormat.MP4
    assert resolver.resolve(MediaRequest(MediaKind.EMOJI, "d1")).payload == b"GIF89a"


def test_dispatch_misses(make_resolver) -> None:
    resolver = make_resolver()
    for kind in MediaKind:
        assert resolver.resolve(MediaRequest(kind, "nothing-here")) == MediaResult.not_found()


def test_context_wiring(resources, tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setattr(context_mod.shutil, "which", lambda name: None)
    settings = SettingsStore()
    settings.connect()
    settings.set_config("voice_workers", 2)

    ctx = CoreContext(resources, settings=settings, cache_path=tmp_path / "media.cache")
    assert not ctx.gateway.has_backend
    ctx.cache.put("d1", b"GIF89a", MediaFormat.GIF)
    assert ctx.resolver.resolve(MediaRequest(MediaKind.EMOJI, "d1")).found
    ctx.close()

    assert (tmp_path / "media.cache").is_file()


def test_context_checks_resource_root(tmp_path: Path) -> None:
    from wxdump.core.resources import ResourceConfig

    with pytest.raises(FileNotFoundError):
        CoreContext(ResourceConfig(tmp_path / "missing"), settings=SettingsStore())


def test_context_close_releases_connections_when_flush_fails(resources, tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setattr(context_mod.shutil, "which", lambda name: None)
    settings = SettingsStore()
    settings.connect()
    ctx = CoreContext(resources, settings=settings, cache_path=tmp_path / "media.cache")
    ctx.fetcher.session  # open the shared session

    def failing_close():
        raise OSError("disk full")

    monkeypatch.setattr(ctx.cache, "close", failing_close)
    with pytest.raises(OSError):
        ctx.close()
    assert settings.conn is None
    assert ctx._http_client._sync_session is None
