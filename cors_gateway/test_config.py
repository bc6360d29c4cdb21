import pytest

from cors_gateway.config import DEFAULT_MAX_AGE, DEFAULT_TIMEOUT_MS, GatewayConfig


def test_defaults_from_empty_environment():
    config = GatewayConfig.from_env({})

    assert config == GatewayConfig()
    assert config.default_target_url == ""
    assert config.allowed_origins == ("*",)
    assert config.allow_credentials is False
    assert config.max_age == DEFAULT_MAX_AGE
    assert config.allow_target_header is True
    assert config.allow_target_query is True
    assert config.path_target_mode is True
    assert config.forward_path is True
    assert config.verify_tls is True
    assert config.timeout_ms == DEFAULT_TIMEOUT_MS


def test_all_settings_read():
    config = GatewayConfig.from_env(
        {
            "TARGET_URL": "https://api.example.com",
            "ALLOWED_ORIGINS": "https://a.dev, https://b.dev,,",
            "CORS_ALLOW_CREDENTIALS": "true",
            "CORS_MAX_AGE": "86400",
            "ALLOW_TARGET_HEADER": "false",
            "ALLOW_TARGET_QUERY": "FALSE",
            "PATH_TARGET_MODE": "false",
            "STRIP_PREFIX": "/proxy",
            "FORWARD_PATH": "false",
            "SECURE_PROXY": "false",
            "PROXY_TIMEOUT_MS": "5000",
        }
    )

    assert config.default_target_url == "https://api.example.com"
    assert config.allowed_origins == ("https://a.dev", "https://b.dev")
    assert config.allow_credentials is True
    assert config.max_age == 86400.0
    assert config.allow_target_header is False
    assert config.allow_target_query is False
    assert config.path_target_mode is False
    assert config.strip_prefix == "/proxy"
    assert config.forward_path is False
    assert config.verify_tls is False
    assert config.timeout_ms == 5000
    assert config.timeout_seconds == 5.0


def test_default_target_url_alias():
    config = GatewayConfig.from_env({"DEFAULT_TARGET_URL": "https://alias.example.com"})

    assert config.default_target_url == "https://alias.example.com"


def test_target_url_wins_over_alias():
    config = GatewayConfig.from_env(
        {
            "TARGET_URL": "https://primary.example.com",
            "DEFAULT_TARGET_URL": "https://alias.example.com",
        }
    )

    assert config.default_target_url == "https://primary.example.com"


def test_trailing_slash_removed_from_prefix():
    assert GatewayConfig(strip_prefix="/proxy/").strip_prefix == "/proxy"


def test_wildcard_origin_detected():
    assert GatewayConfig(allowed_origins=("https://a.dev", "*")).wildcard_origin
    assert not GatewayConfig(allowed_origins=("https://a.dev",)).wildcard_origin


@pytest.mark.parametrize("raw", ["abc", "inf", "nan"])
def test_unusable_max_age_omitted(raw):
    assert GatewayConfig.from_env({"CORS_MAX_AGE": raw}).max_age is None


def test_empty_max_age_uses_default():
    assert GatewayConfig.from_env({"CORS_MAX_AGE": ""}).max_age == DEFAULT_MAX_AGE


@pytest.mark.parametrize("raw", ["", "soon", "0", "-10"])
def test_invalid_timeout_uses_default(raw):
    assert GatewayConfig.from_env({"PROXY_TIMEOUT_MS": raw}).timeout_ms == DEFAULT_TIMEOUT_MS


def test_config_is_immutable():
    config = GatewayConfig()

    with pytest.raises(AttributeError):
        config.default_target_url = "https://other.example.com"
