"""
Tests for storage configuration loading.
"""

import logging

import pytest

from logserver_storage.config import (
    ONE_YEAR_MS,
    RemoteOptions,
    ServerSettings,
    StorageOptions,
    StorageType,
)
from logserver_storage.models import DEFAULT_PURGE_BATCH_SIZE, DEFAULT_TENANT_ID

_ENV_VARS = [
    "LOGSERVER_STORAGE_TYPE",
    "LOGSERVER_DB_PATH",
    "LOGSERVER_IN_MEMORY_ONLY",
    "REDIS_URL",
    "REDIS_HOST",
    "REDIS_PORT",
    "REDIS_PASSWORD",
    "REDIS_DB",
    "REDIS_TLS",
    "REDIS_KEY_PREFIX",
    "TENANT_ID",
    "MAX_RETENTION_PERIOD_MS",
    "PURGE_BATCH_SIZE",
    "PURGE_CRON_SCHEDULE",
]


@pytest.fixture
def clean_env(monkeypatch):
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestStorageType:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("memory", StorageType.MEMORY),
            ("file", StorageType.FILE),
            ("remote", StorageType.REMOTE),
            ("nedb", StorageType.FILE),
            ("NeDB-Style-File", StorageType.FILE),
            ("sqlite", StorageType.FILE),
            ("redis", StorageType.REMOTE),
            (" remote-kv ", StorageType.REMOTE),
        ],
    )
    def test_parse_names_and_aliases(self, value, expected):
        assert StorageType.parse(value) is expected

    @pytest.mark.parametrize("value", [None, "", "   "])
    def test_parse_empty(self, value):
        """Missing values leave the choice to the factory."""
        assert StorageType.parse(value) is None

    def test_parse_unknown(self, caplog):
        """Unknown names log a warning and leave the choice to the factory."""
        with caplog.at_level(logging.WARNING, logger="logserver_storage.config"):
            assert StorageType.parse("cassandra") is None
        assert "cassandra" in caplog.text

    def test_options_parse_string_type(self):
        """StorageOptions accepts a type name in place of the enum."""
        assert StorageOptions(type="redis").type is StorageType.REMOTE


class TestRemoteOptions:
    def test_endpoint_from_parts(self):
        assert RemoteOptions(host="cache", port=6380, db=2).endpoint == "cache:6380/2"

    def test_endpoint_hides_url_credentials(self):
        """Passwords in a URL never reach logs or error details."""
        options = RemoteOptions(url="redis://:s3cret@cache:6379/0")
        assert options.endpoint == "cache:6379/0"
        assert "s3cret" not in options.endpoint

    def test_from_dict_accepts_camel_case_prefix(self):
        options = RemoteOptions.from_dict({"host": "cache", "port": "6380", "keyPrefix": "prod:"})
        assert options.host == "cache"
        assert options.port == 6380
        assert options.key_prefix == "prod:"


class TestStorageOptionsFromEnv:
    def test_defaults(self, clean_env):
        options = StorageOptions.from_env()
        assert options.type is None
        assert options.db_path is None
        assert options.in_memory_only is False
        assert options.tenant_id == DEFAULT_TENANT_ID
        assert options.remote == RemoteOptions()

    def test_reads_environment(self, clean_env):
        clean_env.setenv("LOGSERVER_STORAGE_TYPE", "redis")
        clean_env.setenv("LOGSERVER_DB_PATH", "/var/lib/logs")
        clean_env.setenv("LOGSERVER_IN_MEMORY_ONLY", "TRUE")
        clean_env.setenv("REDIS_HOST", "cache")
        clean_env.setenv("REDIS_PORT", "6380")
        clean_env.setenv("REDIS_PASSWORD", "pw")
        clean_env.setenv("REDIS_DB", "3")
        clean_env.setenv("REDIS_TLS", "yes")
        clean_env.setenv("REDIS_KEY_PREFIX", "staging:")
        clean_env.setenv("TENANT_ID", "acme")

        options = StorageOptions.from_env()

        assert options.type is StorageType.REMOTE
        assert options.db_path == "/var/lib/logs"
        assert options.in_memory_only is True
        assert options.tenant_id == "acme"
        assert options.remote == RemoteOptions(
            host="cache", port=6380, password="pw", db=3, tls=True, key_prefix="staging:"
        )

    def test_unknown_type_does_not_fail(self, clean_env):
        clean_env.setenv("LOGSERVER_STORAGE_TYPE", "mongo")
        assert StorageOptions.from_env().type is None

    def test_redis_url(self, clean_env):
        clean_env.setenv("REDIS_URL", "rediss://cache:6379/1")
        assert StorageOptions.from_env().remote.url == "rediss://cache:6379/1"


class TestStorageOptionsFromFile:
    def test_loads_storage_section(self, tmp_path):
        settings = tmp_path / "settings.yaml"
        settings.write_text(
            "storage:\n"
            "  type: nedb\n"
            "  db_path: ./logs\n"
            "  tenant_id: acme\n"
            "  remote:\n"
            "    url: redis://cache:6379/0\n"
            "    key_prefix: 'prod:'\n"
        )

        options = StorageOptions.from_file(settings)

        assert options.type is StorageType.FILE
        assert options.db_path == "./logs"
        assert options.tenant_id == "acme"
        assert options.remote.url == "redis://cache:6379/0"
        assert options.remote.key_prefix == "prod:"

    def test_empty_file_gives_defaults(self, tmp_path):
        settings = tmp_path / "settings.yaml"
        settings.write_text("")
        assert StorageOptions.from_file(settings) == StorageOptions()

    def test_camel_case_keys(self):
        options = StorageOptions.from_dict({"dbPath": "/data", "inMemoryOnly": True})
        assert options.db_path == "/data"
        assert options.in_memory_only is True


class TestServerSettings:
    def test_defaults(self, clean_env):
        settings = ServerSettings.from_env()
        assert settings.max_retention_period_ms == ONE_YEAR_MS
        assert settings.purge_batch_size == DEFAULT_PURGE_BATCH_SIZE
        assert settings.purge_cron_schedule == "0 * * * *"

    def test_reads_environment(self, clean_env):
        clean_env.setenv("MAX_RETENTION_PERIOD_MS", "-1")
        clean_env.setenv("PURGE_BATCH_SIZE", "50")
        clean_env.setenv("PURGE_CRON_SCHEDULE", "*/5 * * * *")

        settings = ServerSettings.from_env()

        assert settings.max_retention_period_ms == -1
        assert settings.purge_batch_size == 50
        assert settings.purge_cron_schedule == "*/5 * * * *"

    @pytest.mark.parametrize("raw", ["abc", "-2", "1.5"])
    def test_invalid_max_retention_uses_default(self, clean_env, caplog, raw):
        clean_env.setenv("MAX_RETENTION_PERIOD_MS", raw)
        with caplog.at_level(logging.WARNING, logger="logserver_storage.config"):
            settings = ServerSettings.from_env()
        assert settings.max_retention_period_ms == ONE_YEAR_MS
        assert "MAX_RETENTION_PERIOD_MS" in caplog.text

    @pytest.mark.parametrize("raw", ["0", "-10", "many"])
    def test_invalid_batch_size_uses_default(self, clean_env, raw):
        clean_env.setenv("PURGE_BATCH_SIZE", raw)
        assert ServerSettings.from_env().purge_batch_size == DEFAULT_PURGE_BATCH_SIZE
