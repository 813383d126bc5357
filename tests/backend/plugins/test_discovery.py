from fastapi import FastAPI

from plugins import discover_plugins, init_plugins


def test_accounts_plugin_is_discovered():
    plugins = {plugin.name: plugin for plugin in discover_plugins()}

    assert "core/accounts" in plugins
    assert plugins["core/accounts"].prefix == "/core/accounts"
    assert plugins["core/accounts"].version == "1.0.0"


def test_excluded_plugins_are_not_mounted():
    app = FastAPI()
    init_plugins(app, excluded_plugins=["core/accounts"])

    assert "/core/accounts/reset" not in {route.path for route in app.routes}


def test_plugins_are_mounted_under_their_path():
    app = FastAPI()
    init_plugins(app)

    assert "/core/accounts/reset" in {route.path for route in app.routes}
