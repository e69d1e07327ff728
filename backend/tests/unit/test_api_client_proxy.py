from unittest.mock import MagicMock

import pytest

import reviewdesk.lib.api_client as api_client


@pytest.fixture(autouse=True)
def _fresh_cache():
    api_client.get_client.cache_clear()
    yield
    api_client.get_client.cache_clear()


def test_import_never_creates_clients(monkeypatch):
    created = []
    monkeypatch.setattr(api_client, "create_client", lambda url, key: created.append((url, key)))
    assert isinstance(api_client.supabase_admin, api_client._ClientProxy)
    assert created == []


def test_missing_url_fails_on_first_use(monkeypatch):
    monkeypatch.setattr(api_client, "app_config", MagicMock(supabase_url="", supabase_key="k"))
    with pytest.raises(RuntimeError, match="SUPABASE_URL"):
        api_client.supabase_admin.table("users")


def test_admin_proxy_uses_service_role_key_and_caches(monkeypatch):
    fake = MagicMock()
    calls = []

    def _create(url, key):
        calls.append((url, key))
        return fake

    monkeypatch.setattr(api_client, "create_client", _create)
    monkeypatch.setattr(
        api_client, "app_config", MagicMock(supabase_url="https://db.example.org", supabase_key="service-key")
    )

    api_client.supabase_admin.table("users")
    api_client.supabase_admin.storage
    assert calls == [("https://db.example.org", "service-key")]
    fake.table.assert_called_once_with("users")


def test_anon_proxy_reads_anon_key(monkeypatch):
    monkeypatch.delenv("SUPABASE_ANON_KEY", raising=False)
    monkeypatch.setenv("SUPABASE_KEY", "anon-key")
    calls = []
    monkeypatch.setattr(api_client, "create_client", lambda url, key: calls.append(key) or MagicMock())
    monkeypatch.setattr(api_client, "app_config", MagicMock(supabase_url="https://db.example.org", supabase_key=""))

    api_client.supabase.auth
    assert calls == ["anon-key"]
