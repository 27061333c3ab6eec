import dataclasses

import pytest

from sidecar_injector import config as conf


ENV_VARS = [
	"SIDECAR_AGENT_API_KEY",
	"SIDECAR_AGENT_KUBELET_PORT",
	"SIDECAR_AGENT_KUBELET_INSECURE_TLS",
	"SIDECAR_AGENT_KUBELET_INSECURE_PORT",
	"SIDECAR_IGNORE_NAMESPACES",
	"SIDECAR_AGENT_IMAGE",
	"SIDECAR_AGENT_CONFIG_MAP",
	"PORT",
	"TLS_CERT_FILE",
	"TLS_KEY_FILE",
	"LOG_LEVEL",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch):
	for k in ENV_VARS:
		monkeypatch.delenv(k, raising=False)


def test_defaults():
	settings = conf.load()
	injector = settings.injector
	assert injector.agent_api_key == ""
	assert injector.kubelet_port == -1
	assert injector.kubelet_port_configured is False
	assert injector.kubelet_insecure_tls is False
	assert injector.ignored_namespaces == frozenset(conf.DEFAULT_IGNORED_NAMESPACES)
	assert injector.agent_image == "mackerel/mackerel-container-agent:latest"
	assert injector.agent_config_map == ""
	assert settings.port == 8443
	assert settings.tls_cert_file == "tls/tls.crt"
	assert settings.tls_key_file == "tls/tls.key"
	assert settings.log_level == "INFO"


def test_env_overrides(monkeypatch: pytest.MonkeyPatch):
	monkeypatch.setenv("SIDECAR_AGENT_API_KEY", "abc123")
	monkeypatch.setenv("SIDECAR_AGENT_KUBELET_PORT", "10250")
	monkeypatch.setenv("SIDECAR_AGENT_KUBELET_INSECURE_TLS", "true")
	monkeypatch.setenv("SIDECAR_IGNORE_NAMESPACES", "monitoring, batch ,")
	monkeypatch.setenv("SIDECAR_AGENT_CONFIG_MAP", "agent-conf")
	monkeypatch.setenv("PORT", "9443")
	monkeypatch.setenv("LOG_LEVEL", "debug")

	settings = conf.load()
	injector = settings.injector
	assert injector.agent_api_key == "abc123"
	assert injector.kubelet_port == 10250
	assert injector.kubelet_insecure_tls is True
	assert {"monitoring", "batch", "kube-system"} <= injector.ignored_namespaces
	assert "" not in injector.ignored_namespaces
	assert injector.agent_config_map == "agent-conf"
	assert settings.port == 9443
	assert settings.log_level == "DEBUG"


def test_legacy_insecure_env(monkeypatch: pytest.MonkeyPatch):
	monkeypatch.setenv("SIDECAR_AGENT_KUBELET_INSECURE_PORT", "1")
	assert conf.load().injector.kubelet_insecure_tls is True


def test_flags_override_env(monkeypatch: pytest.MonkeyPatch):
	monkeypatch.setenv("SIDECAR_AGENT_API_KEY", "from-env")
	monkeypatch.setenv("SIDECAR_AGENT_KUBELET_PORT", "10250")

	settings = conf.load(
		[
			"--agentAPIKey", "from-flag",
			"--agentKubeletPort", "10255",
			"--agentKubeletInsecureTLS",
			"--ignoreNamespace", "team-a",
			"--ignoreNamespace", "team-b",
			"--port", "443",
		]
	)
	injector = settings.injector
	assert injector.agent_api_key == "from-flag"
	assert injector.kubelet_port == 10255
	assert injector.kubelet_insecure_tls is True
	assert {"team-a", "team-b"} <= injector.ignored_namespaces
	assert settings.port == 443


def test_invalid_env_values_fallback(monkeypatch: pytest.MonkeyPatch):
	monkeypatch.setenv("SIDECAR_AGENT_KUBELET_PORT", "not-int")
	monkeypatch.setenv("PORT", "nope")

	settings = conf.load()
	assert settings.injector.kubelet_port == -1
	assert settings.port == 8443


def test_out_of_range_port_is_usage_error():
	with pytest.raises(SystemExit):
		conf.load(["--agentKubeletPort", "70000"])


@pytest.mark.parametrize("port", [-2, 65536])
def test_injector_config_rejects_bad_port(port):
	with pytest.raises(ValueError):
		conf.InjectorConfig(kubelet_port=port)


def test_injector_config_is_frozen_and_normalizes_namespaces():
	injector = conf.InjectorConfig(ignored_namespaces=["a", "b", "a"])
	assert injector.ignored_namespaces == frozenset({"a", "b"})
	with pytest.raises(dataclasses.FrozenInstanceError):
		injector.kubelet_port = 1  # type: ignore[misc]


def test_insecure_tls_flag_can_turn_off_env(monkeypatch: pytest.MonkeyPatch):
	monkeypatch.setenv("SIDECAR_AGENT_KUBELET_INSECURE_TLS", "true")
	assert conf.load().injector.kubelet_insecure_tls is True
	assert conf.load(["--no-agentKubeletInsecureTLS"]).injector.kubelet_insecure_tls is False
