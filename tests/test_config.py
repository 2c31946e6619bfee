"""Tests for configuration loading."""

from pathlib import Path

import pytest

from qbxml_relay.config.settings import RelayConfig, load_config
from qbxml_relay.models.types import EntityType

REPO_CONFIG = Path(__file__).resolve().parent.parent / "config"

ENV_NAMES = [
    "QBXML_RELAY_LOG_LEVEL",
    "QBXML_RELAY_LOG_FORMAT",
    "QBXML_RELAY_SESSION_BACKEND",
    "QBXML_RELAY_STORE_DIR",
    "QBXML_RELAY_SESSION_TTL_HOURS",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_NAMES:
        monkeypatch.delenv(name, raising=False)


def write_defaults(directory, text):
    (directory / "defaults.yaml").write_text(text, encoding="utf-8")
    return directory


class TestLoadConfig:
    """Tests for load_config."""

    def test_shipped_defaults_match_builtin_defaults(self):
        result = load_config(REPO_CONFIG)

        assert result.is_ok()
        config = result.unwrap()
        assert config.session == RelayConfig().session
        assert config.processor == RelayConfig().processor
        assert config.batch == RelayConfig().batch
        assert config.config_dir == REPO_CONFIG

    def test_missing_directory_uses_defaults(self, tmp_path):
        config = load_config(tmp_path / "absent").unwrap()

        assert config.retry.max_retries == 3
        assert config.session.backend == "memory"

    def test_partial_yaml(self, tmp_path):
        write_defaults(tmp_path, "retry:\n  max_retries: 5\nprocessor:\n  default_entity_type: Invoice\n")

        config = load_config(tmp_path).unwrap()

        assert config.retry.max_retries == 5
        assert config.retry.initial_delay == 1.0
        assert config.processor.default_entity_type is EntityType.INVOICE

    def test_entity_type_by_name(self, tmp_path):
        write_defaults(tmp_path, "processor:\n  default_entity_type: sales_order\n")

        config = load_config(tmp_path).unwrap()

        assert config.processor.default_entity_type is EntityType.SALES_ORDER

    def test_unknown_entity_type(self, tmp_path):
        write_defaults(tmp_path, "processor:\n  default_entity_type: Spaceship\n")

        error = load_config(tmp_path).unwrap_err()

        assert error.field == "processor.default_entity_type"

    def test_invalid_yaml(self, tmp_path):
        write_defaults(tmp_path, "retry: [unclosed\n")

        assert load_config(tmp_path).unwrap_err().field == "yaml"

    def test_non_mapping_yaml(self, tmp_path):
        write_defaults(tmp_path, "- a\n- b\n")

        assert load_config(tmp_path).unwrap_err().field == "yaml"

    def test_bad_value_type(self, tmp_path):
        write_defaults(tmp_path, "retry:\n  max_retries: lots\n")

        assert load_config(tmp_path).unwrap_err().field == "unknown"

    @pytest.mark.parametrize(
        "text,field",
        [
            ("session:\n  ttl_hours: 0\n", "session.ttl_hours"),
            ("session:\n  backend: redis\n", "session.backend"),
            ("retry:\n  max_retries: -1\n", "retry.max_retries"),
            ("retry:\n  backoff_multiplier: 0.5\n", "retry.backoff_multiplier"),
            ("retry:\n  initial_delay: 10\n  max_delay: 5\n", "retry.max_delay"),
            ("processor:\n  max_returned: 0\n", "processor.max_returned"),
            ("batch:\n  max_concurrent: 0\n", "batch.max_concurrent"),
            ("logging:\n  level: loud\n", "logging.level"),
            ("logging:\n  format: xml\n", "logging.format"),
        ],
    )
    def test_validation_errors(self, tmp_path, text, field):
        write_defaults(tmp_path, text)

        assert load_config(tmp_path).unwrap_err().field == field


class TestEnvironmentOverrides:
    """Tests for QBXML_RELAY_* overrides."""

    def test_overrides(self, tmp_path):
        config = RelayConfig().with_env_overrides({
            "QBXML_RELAY_LOG_LEVEL": "DEBUG",
            "QBXML_RELAY_LOG_FORMAT": "console",
            "QBXML_RELAY_SESSION_BACKEND": "file",
            "QBXML_RELAY_STORE_DIR": str(tmp_path),
            "QBXML_RELAY_SESSION_TTL_HOURS": "2.5",
        })

        assert config.logging.level == "debug"
        assert config.logging.format == "console"
        assert config.session.backend == "file"
        assert config.session.store_dir == tmp_path
        assert config.session.ttl_hours == 2.5

    def test_empty_values_are_ignored(self):
        config = RelayConfig().with_env_overrides({"QBXML_RELAY_LOG_LEVEL": ""})

        assert config.logging.level == "info"

    def test_load_config_applies_environment(self, tmp_path, monkeypatch):
        monkeypatch.setenv("QBXML_RELAY_SESSION_BACKEND", "file")

        assert load_config(tmp_path).unwrap().session.backend == "file"

    def test_bad_ttl_in_environment(self, tmp_path, monkeypatch):
        monkeypatch.setenv("QBXML_RELAY_SESSION_TTL_HOURS", "soon")

        assert load_config(tmp_path).unwrap_err().field == "environment"


class TestRetryConfig:
    def test_to_policy(self):
        policy = RelayConfig().retry.to_policy()

        assert policy.max_retries == 3
        assert policy.retryable_codes == frozenset({"NETWORK_ERROR", "TIMEOUT", "QB_BUSY"})
        assert policy.total_attempts == 4
