import importlib

import pytest

import rewrite_proxy.vars as vars_module


@pytest.fixture
def reload_vars(monkeypatch):
    def _reload(**env):
        for name, value in env.items():
            monkeypatch.setenv(name, value)
        return importlib.reload(vars_module)

    yield _reload
    monkeypatch.undo()
    importlib.reload(vars_module)


def test_defaults(reload_vars, monkeypatch):
    monkeypatch.delenv("ALLOWED_DOMAINS", raising=False)
    monkeypatch.delenv("PROXY_ROUTES", raising=False)
    module = reload_vars()

    assert module.ALLOWED_DOMAINS == module.DEFAULT_ALLOWED_DOMAINS
    assert module.PROXY_ROUTES == module.DEFAULT_PROXY_ROUTES
    assert module.PROXY_ROUTES["/steam"] == "https://store.steampowered.com"


def test_allowed_domains_parsing(reload_vars):
    module = reload_vars(ALLOWED_DOMAINS=" a.example.com, ,b.example.com ")

    assert module.ALLOWED_DOMAINS == ["a.example.com", "b.example.com"]


def test_proxy_routes_parsing(reload_vars):
    module = reload_vars(
        PROXY_ROUTES="/a=https://a.example.com, /b = https://b.example.com/x,broken,=x"
    )

    assert module.PROXY_ROUTES == {
        "/a": "https://a.example.com",
        "/b": "https://b.example.com/x",
    }


def test_public_url_trailing_slash_stripped(reload_vars):
    module = reload_vars(PUBLIC_URL="https://proxy.example.com/", PROXY_TIMEOUT="30")

    assert module.PUBLIC_URL == "https://proxy.example.com"
    assert module.PROXY_TIMEOUT == 30
