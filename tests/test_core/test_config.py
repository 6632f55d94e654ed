# tests/test_core/test_config.py
from media_resolver.core.config import MAX_REGISTRATION_ATTEMPTS, Settings


def test_defaults_import_without_any_external_system(monkeypatch):
    for name in ("AWS_BUCKET_NAME", "CLOUDFRONT_DOMAIN", "MUX_TOKEN_ID", "MEDIACONVERT_ENDPOINT"):
        monkeypatch.delenv(name, raising=False)

    s = Settings(_env_file=None)

    assert s.cdn_base_url == ""
    assert s.REGISTRATION_MAX_ATTEMPTS == MAX_REGISTRATION_ATTEMPTS
    assert s.playback_order_list == ["PROCESSOR_STREAM", "CDN", "ORIGIN_RELAY"]


def test_cloudfront_domain_is_normalized(monkeypatch):
    monkeypatch.setenv("CLOUDFRONT_DOMAIN", "d123.cloudfront.net/")

    s = Settings(_env_file=None)

    assert s.CLOUDFRONT_DOMAIN == "https://d123.cloudfront.net"
    assert s.cdn_base_url == "https://d123.cloudfront.net"


def test_playback_order_csv(monkeypatch):
    monkeypatch.setenv("PLAYBACK_ORDER", "cdn, origin_relay,,")

    assert Settings(_env_file=None).playback_order_list == ["CDN", "ORIGIN_RELAY"]


def test_async_dsn_uses_asyncpg(monkeypatch):
    monkeypatch.setenv("POSTGRES_SERVER", "db")
    monkeypatch.setenv("POSTGRES_DB", "media")

    s = Settings(_env_file=None)

    assert s.ASYNC_DATABASE_URL.startswith("postgresql+asyncpg://")
    assert s.ASYNC_DATABASE_URL.endswith("@db:5432/media")
    assert s.TEST_DATABASE_URL.endswith("/media_test")


def test_origin_relay_base_url_trailing_slash(monkeypatch):
    monkeypatch.setenv("ORIGIN_RELAY_BASE_URL", "https://app.example.com/api/videos/stream/")

    assert Settings(_env_file=None).ORIGIN_RELAY_BASE_URL == "https://app.example.com/api/videos/stream"
