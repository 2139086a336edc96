import pytest
from fastapi import HTTPException

from config import Settings, parse_duration
from database import build_engine
from responses import page_meta
from security import create_access_token, decode_access_token, get_password_hash, verify_password


@pytest.mark.parametrize("value,seconds", [
    ("24h", 86400),
    ("7d", 604800),
    ("30m", 1800),
    ("45s", 45),
    ("3600", 3600),
])
def test_parse_duration(value, seconds):
    assert parse_duration(value) == seconds


def test_parse_duration_rejects_garbage():
    with pytest.raises(ValueError):
        parse_duration("tomorrow")


def test_settings_from_env(monkeypatch):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.delenv("PORT", raising=False)
    monkeypatch.setenv("DB_HOST", "db.internal")
    monkeypatch.setenv("DB_USER", "grocer")
    monkeypatch.setenv("DB_PASSWORD", "pw")
    monkeypatch.setenv("DB_NAME", "shop")
    monkeypatch.setenv("DB_FORCE_SYNC", "true")
    monkeypatch.setenv("CORS_ORIGIN", "http://a.test, http://b.test")
    monkeypatch.setenv("JWT_EXPIRES_IN", "7d")

    settings = Settings.from_env()

    assert settings.database_url == "mysql+aiomysql://grocer:pw@db.internal/shop"
    assert settings.db_force_sync is True
    assert settings.cors_origins == ["http://a.test", "http://b.test"]
    assert settings.jwt_expires_seconds == 604800
    assert settings.is_sqlite is False
    assert settings.port == 5000


def test_password_hash_roundtrip():
    hashed = get_password_hash("secret123")
    assert hashed != "secret123"
    assert verify_password("secret123", hashed)
    assert not verify_password("secret124", hashed)


def test_token_carries_id_and_role():
    settings = Settings(jwt_secret="s")
    token = create_access_token("user-1", "owner", settings)
    data = decode_access_token(token, settings)
    assert data.id == "user-1"
    assert data.role.value == "owner"


def test_token_signed_with_another_secret_is_rejected():
    token = create_access_token("user-1", "buyer", Settings(jwt_secret="one"))
    with pytest.raises(HTTPException) as exc_info:
        decode_access_token(token, Settings(jwt_secret="two"))
    assert exc_info.value.status_code == 401


@pytest.mark.parametrize("total,limit,offset,expected", [
    (0, None, None, {"current_page": 1, "total_pages": 1}),
    (25, 10, 0, {"current_page": 1, "total_pages": 3}),
    (25, 10, 20, {"current_page": 3, "total_pages": 3}),
])
def test_page_meta(total, limit, offset, expected):
    assert page_meta(total, limit, offset) == expected


async def test_server_engine_pool_is_bounded_and_lazy(monkeypatch):
    monkeypatch.setenv("DB_POOL_MIN", "3")
    settings = Settings(database_url="mysql+aiomysql://u:p@db.invalid/shop", pool_max=7, pool_acquire_timeout=12)
    engine = build_engine(settings)
    try:
        assert engine.pool.size() == 7
        assert engine.pool.timeout() == 12
        # nothing is opened up front
        assert engine.pool.checkedin() == 0
        assert not hasattr(Settings.from_env(), "pool_min")
    finally:
        await engine.dispose()
