import pytest

from core.utils.runtime import dev_mode_active
from core.utils.urls import app_url, get_app_base_url


def test_dev_mode_active_false_when_disabled(monkeypatch):
    monkeypatch.delenv("DEV_MODE", raising=False)
    assert dev_mode_active() is False


def test_dev_mode_active_true_for_localhost(monkeypatch):
    monkeypatch.setenv("DEV_MODE", "true")
    monkeypatch.setenv("APP_BASE_URL", "http://localhost:3000")
    assert dev_mode_active() is True


def test_dev_mode_active_raises_for_remote_host(monkeypatch):
    monkeypatch.setenv("DEV_MODE", "true")
    monkeypatch.setenv("APP_BASE_URL", "https://pawtraits.pics")
    with pytest.raises(RuntimeError):
        dev_mode_active()


def test_dev_mode_allowed_host_list(monkeypatch):
    monkeypatch.setenv("DEV_MODE", "true")
    monkeypatch.setenv("APP_BASE_URL", "https://staging.pawtraits.pics")
    monkeypatch.setenv("DEV_MODE_ALLOWED_HOSTS", "staging.pawtraits.pics")
    assert dev_mode_active() is True


def test_base_url_precedence(monkeypatch):
    monkeypatch.setenv("APP_BASE_URL", "https://pawtraits.pics/")
    assert get_app_base_url() == "https://pawtraits.pics"
    assert app_url("/shop") == "https://pawtraits.pics/shop"

    monkeypatch.delenv("APP_BASE_URL")
    monkeypatch.setenv("APP_HOST", "shop.pawtraits.pics")
    assert get_app_base_url() == "https://shop.pawtraits.pics"

    monkeypatch.setenv("APP_HOST", "localhost:3000")
    assert get_app_base_url() == "http://localhost:3000"

    monkeypatch.delenv("APP_HOST")
    assert get_app_base_url() == "http://localhost:3000"
