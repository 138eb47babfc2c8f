from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from conftest import FakeSession
from wxdump.core.dto.media import EmojiDescriptor, MediaFormat
from wxdump.core.emoji import EmojiResolver, decrypt_local_emoji, emoji_aes_key
from wxdump.core.fetcher import MediaFetcher
from wxdump.media.codec_gateway import CallableCodecBackend, CodecGateway
from wxdump.media.content import digest

KEY_DIGEST = "0123456789abcdef0123456789abcdef"
GIF = b"GIF89a" + bytes(range(256)) * 8  # longer than the encrypted head


def encrypt_local(data: bytes) -> bytes:
    encryptor = Cipher(algorithms.AES(emoji_aes_key(KEY_DIGEST)), modes.ECB()).encryptor()
    head = data[:1024]
    return encryptor.update(head) + encryptor.finalize() + data[1024:]


def encrypt_cdn(data: bytes, key_hex: str) -> bytes:
    key = bytes.fromhex(key_hex)
    encryptor = Cipher(algorithms.AES(key), modes.CBC(key)).encryptor()
    return encryptor.update(data) + encryptor.finalize()


def make_resolver(resources, cache, *, session=None, descriptors=None, groups=None, gateway=None):
    return EmojiResolver(
        resources,
        cache,
        gateway or CodecGateway(),
        fetcher=MediaFetcher(session=session or FakeSession()),
        descriptors=descriptors,
        groups=groups,
        encryption_key=KEY_DIGEST,
    )


def test_aes_key_is_ascii_of_first_half() -> None:
    assert emoji_aes_key(KEY_DIGEST) == b"0123456789abcdef"


def test_local_decrypt_only_touches_head() -> None:
    enc = encrypt_local(GIF)
    assert enc[1024:] == GIF[1024:]
    assert decrypt_local_emoji(enc, emoji_aes_key(KEY_DIGEST)) == GIF


def test_cache_hit_short_circuits(resources, media_cache) -> None:
    media_cache.put("d1", b"GIF89a-cached", MediaFormat.GIF)
    session = FakeSession()
    resolver = make_resolver(
        resources, media_cache, session=session,
        descriptors={"d1": EmojiDescriptor("", "", cdn_url="http://cdn/d1")},
    )
    result = resolver.resolve("d1")
    assert result.payload == b"GIF89a-cached"
    assert session.requested == []


def test_exact_plain_file_in_group(resources, resource_root, media_cache) -> None:
    d = digest(GIF)
    group = resource_root / "emoji" / "pack1"
    group.mkdir()
    (group / d).write_bytes(GIF)

    result = make_resolver(resources, media_cache, groups={d: "pack1"}).resolve(d)
    assert result.payload == GIF
    assert result.format is MediaFormat.GIF
    assert media_cache.get(d) is None


def test_exact_encrypted_file(resources, resource_root, media_cache) -> None:
    d = digest(GIF)
    (resource_root / "emoji" / d).write_bytes(encrypt_local(GIF))

    result = make_resolver(resources, media_cache).resolve(d)
    assert result.payload == GIF


def test_encrypted_wxgf_goes_through_gateway(resources, resource_root, media_cache) -> None:
    wxgf = b"wxgf" + b"\x07" * 60
    (resource_root / "emoji" / "abc").write_bytes(encrypt_local(wxgf))
    gateway = CodecGateway(CallableCodecBackend(lambda data: GIF if data == wxgf else None))

    result = make_resolver(resources, media_cache, gateway=gateway).resolve("abc")
    assert result.payload == GIF
    assert (resource_root / "emoji" / "abc.dec").is_file()


def test_cdn_match_is_cached(resources, media_cache) -> None:
    d = digest(GIF)
    session = FakeSession({"http://cdn/e": GIF})
    resolver = make_resolver(
        resources, media_cache, session=session,
        descriptors={d: EmojiDescriptor("", "", cdn_url="http://cdn/e")},
    )
    assert resolver.resolve(d).payload == GIF
    assert media_cache.get(d).payload == GIF


def test_encrypted_download_is_cached(resources, media_cache) -> None:
    d = digest(GIF)
    key_hex = "00112233445566778899aabbccddeeff"
    padded = GIF + b"\x00" * (-len(GIF) % 16)
    session = FakeSession({"http://enc/e": encrypt_cdn(padded, key_hex)})
    resolver = make_resolver(
        resources, media_cache, session=session,
        descriptors={d: EmojiDescriptor("", "", encrypted_url="http://enc/e", aes_key_hex=key_hex)},
    )
    result = resolver.resolve(d)
    assert result.payload == padded
    assert result.format is MediaFormat.GIF
    assert media_cache.get(d) is not None


def test_mismatched_cdn_returned_but_not_cached(resources, media_cache) -> None:
    d = digest(GIF)
    session = FakeSession({"http://cdn/e": b"GIF89a-something-else"})
    resolver = make_resolver(
        resources, media_cache, session=session,
        descriptors={d: EmojiDescriptor("", "", cdn_url="http://cdn/e")},
    )
    result = resolver.resolve(d)
    assert result.payload == b"GIF89a-something-else"
    assert media_cache.get(d) is None


def test_fuzzy_fallback_not_cached(resources, resource_root, media_cache) -> None:
    d = digest(GIF)
    (resource_root / "emoji" / f"{d}_thumb").write_bytes(b"\x89PNG\r\n\x1a\nrest")
    (resource_root / "emoji" / f"{d}_junk").write_bytes(b"\x00\x01")

    result = make_resolver(resources, media_cache).resolve(d)
    assert result.payload.startswith(b"\x89PNG")
    assert result.format is MediaFormat.PNG
    assert media_cache.get(d) is None


def test_non_media_download_falls_through_to_local_file(resources, resource_root, media_cache) -> None:
    d = digest(GIF)
    (resource_root / "emoji" / f"{d}_thumb").write_bytes(b"\x89PNG\r\n\x1a\nrest")
    session = FakeSession({"http://cdn/e": b"<html>rate limited</html>"})
    resolver = make_resolver(
        resources, media_cache, session=session,
        descriptors={d: EmojiDescriptor("", "", cdn_url="http://cdn/e")},
    )

    result = resolver.resolve(d)
    assert result.format is MediaFormat.PNG
    assert result.payload.startswith(b"\x89PNG")
    assert media_cache.get(d) is None


def test_total_miss(resources, media_cache) -> None:
    assert not make_resolver(resources, media_cache).resolve("missing").found
