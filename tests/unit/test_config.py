"""Unit tests for settings resolution"""

import pytest

from conftest import JST
from zaim_exporter.config import Settings


def make_settings(**overrides):
    values = {
        "zaim_consumer_key": "consumer-key",
        "zaim_consumer_secret": "consumer-secret",
        "redis_url": None,
        "redis_password": "",
    }
    values.update(overrides)
    return Settings(**values)


def test_explicit_redis_url_wins():
    app_settings = make_settings(redis_url="redis://cache:6380/2", redis_password="ignored")

    assert app_settings.resolved_redis_url == "redis://cache:6380/2"


def test_redis_url_built_from_components_when_password_set():
    app_settings = make_settings(redis_host="redis", redis_port=6379, redis_password="s3cret", redis_db=1)

    assert app_settings.resolved_redis_url == "redis://:s3cret@redis:6379/1"


def test_no_redis_without_password():
    assert make_settings(redis_host="redis").resolved_redis_url is None


def test_reporting_timezone():
    assert make_settings().reporting_tz == JST
    assert make_settings(reporting_timezone="UTC").reporting_tz.key == "UTC"


def test_oauth_configured():
    make_settings().ensure_oauth_configured()


@pytest.mark.parametrize("missing", ["zaim_consumer_key", "zaim_consumer_secret"])
def test_oauth_not_configured(missing):
    with pytest.raises(ValueError):
        make_settings(**{missing: ""}).ensure_oauth_configured()


def test_secrets_are_masked():
    app_settings = make_settings(encryption_key="0123456789abcdef0123456789abcdef")

    assert "0123456789abcdef" not in repr(app_settings)
    assert app_settings.encryption_key.get_secret_value() == "0123456789abcdef0123456789abcdef"
