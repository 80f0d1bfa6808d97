"""Unit tests for config.py - Configuration management."""

import os
from unittest.mock import patch

import config
from config import (
    APIConfig,
    Config,
    ControllerConfig,
    KubernetesConfig,
    PluginConfig,
    get_config,
    load_config,
    reset_config,
)


class TestKubernetesConfig:
    """Tests for KubernetesConfig class."""

    def test_default_values(self):
        cfg = KubernetesConfig()
        assert cfg.server is None
        assert cfg.insecure_skip_tls_verify is False
        assert cfg.namespace is None
        assert cfg.resource_group == "converge.k8s.io"
        assert cfg.resource_version == "v1"

    def test_from_env(self):
        env_vars = {
            "KUBERNETES_SERVER": "https://k8s:6443",
            "KUBERNETES_TOKEN": "secret",
            "KUBERNETES_INSECURE_SKIP_TLS_VERIFY": "true",
            "WATCH_NAMESPACE": "team-a",
            "RESOURCE_GROUP": "aws.example.com",
        }
        with patch.dict(os.environ, env_vars, clear=True):
            cfg = KubernetesConfig.from_env()

        assert cfg.server == "https://k8s:6443"
        assert cfg.token == "secret"
        assert cfg.insecure_skip_tls_verify is True
        assert cfg.namespace == "team-a"
        assert cfg.resource_group == "aws.example.com"

    def test_token_not_in_repr(self):
        cfg = KubernetesConfig(token="secret", password="hunter2")
        assert "secret" not in repr(cfg)
        assert "hunter2" not in repr(cfg)


class TestControllerConfig:
    """Tests for ControllerConfig class."""

    def test_default_values(self):
        cfg = ControllerConfig()
        assert cfg.retry_delay == 30
        assert cfg.recently_deleted_delay == 10
        assert cfg.resync_error_delay == 5
        assert cfg.evict_settled_operations is True
        assert cfg.shutdown_grace_period == 30

    def test_from_env(self):
        env_vars = {
            "TRANSIENT_RETRY_DELAY": "5",
            "RECENTLY_DELETED_RETRY_DELAY": "2",
            "RESYNC_ERROR_DELAY": "1",
            "EVICT_SETTLED_OPERATIONS": "false",
            "SHUTDOWN_GRACE_PERIOD": "60",
        }
        with patch.dict(os.environ, env_vars, clear=True):
            cfg = ControllerConfig.from_env()

        assert cfg.retry_delay == 5
        assert cfg.recently_deleted_delay == 2
        assert cfg.resync_error_delay == 1
        assert cfg.evict_settled_operations is False
        assert cfg.shutdown_grace_period == 60


class TestAPIConfig:
    """Tests for APIConfig class."""

    def test_default_values(self):
        cfg = APIConfig()
        assert cfg.host == "0.0.0.0"
        assert cfg.port == 8080
        assert cfg.log_level == "INFO"

    def test_from_env(self):
        with patch.dict(os.environ, {"PORT": "9090", "LOG_LEVEL": "DEBUG"}, clear=True):
            cfg = APIConfig.from_env()
        assert cfg.port == 9090
        assert cfg.log_level == "DEBUG"


class TestPluginConfig:
    """Tests for PluginConfig class."""

    def test_default_values(self):
        cfg = PluginConfig()
        assert cfg.enabled_resource_types == []
        assert cfg.adapter_configs == {}

    def test_from_env(self):
        env_vars = {
            "ENABLED_RESOURCE_TYPES": "queues, buckets",
            "ADAPTER_CONFIGS": '{"queues": {"request_timeout": 5}}',
        }
        with patch.dict(os.environ, env_vars, clear=True):
            cfg = PluginConfig.from_env()

        assert cfg.enabled_resource_types == ["queues", "buckets"]
        assert cfg.adapter_configs == {"queues": {"request_timeout": 5}}

    def test_invalid_adapter_configs_ignored(self):
        with patch.dict(os.environ, {"ADAPTER_CONFIGS": "{not json"}, clear=True):
            cfg = PluginConfig.from_env()
        assert cfg.adapter_configs == {}


class TestConfigSingleton:
    """Tests for load_config/get_config/reset_config."""

    def setup_method(self):
        reset_config()

    def teardown_method(self):
        reset_config()

    def test_load_config_caches(self):
        with patch.dict(os.environ, {}, clear=True):
            first = load_config()
            second = get_config()
        assert first is second
        assert isinstance(first, Config)

    def test_reset_config(self):
        with patch.dict(os.environ, {}, clear=True):
            load_config()
        reset_config()
        assert config.config is None

    def test_default(self):
        cfg = Config.default()
        assert cfg.kubernetes.namespace is None
        assert cfg.api.port == 8080
