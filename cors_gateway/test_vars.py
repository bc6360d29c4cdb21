import importlib

import cors_gateway.vars as vars_module


def teardown_module():
    importlib.reload(vars_module)


def test_defaults(monkeypatch):
    for name in ("HOST", "PORT", "LOG_LEVEL", "METRICS_ENABLED", "METRICS_PATH", "STATIC_DIR"):
        monkeypatch.delenv(name, raising=False)

    importlib.reload(vars_module)

    assert vars_module.HOST == "0.0.0.0"
    assert vars_module.PORT == "8080"
    assert vars_module.LOG_LEVEL == "info"
    assert vars_module.METRICS_ENABLED is True
    assert vars_module.METRICS_PATH == "/_gateway/metrics"
    assert vars_module.STATIC_DIR == ""


def test_overrides(monkeypatch):
    monkeypatch.setenv("PORT", "9000")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    monkeypatch.setenv("METRICS_ENABLED", "false")
    monkeypatch.setenv("STATIC_DIR", "/srv/www")

    importlib.reload(vars_module)

    assert vars_module.PORT == "9000"
    assert vars_module.LOG_LEVEL == "debug"
    assert vars_module.METRICS_ENABLED is False
    assert vars_module.STATIC_DIR == "/srv/www"
