import argparse
import os
from dataclasses import dataclass, field
from typing import Sequence

DEFAULT_AGENT_IMAGE = "mackerel/mackerel-container-agent:latest"
KUBELET_PORT_UNSET = -1

# Control-plane namespaces are never injected, whatever the flags say
DEFAULT_IGNORED_NAMESPACES = ("kube-system", "kube-public", "kube-node-lease")


def _get_env(name: str, default: str) -> str:
    val = os.getenv(name)
    return val if val is not None and val != "" else default


def _parse_int(name: str, default: int) -> int:
    val = _get_env(name, str(default))
    try:
        return int(val)
    except ValueError:
        return default


def _parse_bool(name: str, default: bool) -> bool:
    val = _get_env(name, "")
    if not val:
        return default
    return val.lower() in ("1", "true", "yes")


def _parse_list(name: str) -> list[str]:
    val = _get_env(name, "")
    return [item.strip() for item in val.split(",") if item.strip()]


@dataclass(frozen=True)
class InjectorConfig:
    agent_api_key: str = ""
    kubelet_port: int = KUBELET_PORT_UNSET
    kubelet_insecure_tls: bool = False
    ignored_namespaces: frozenset[str] = field(default_factory=frozenset)
    agent_image: str = DEFAULT_AGENT_IMAGE
    # Name of a ConfigMap carrying mackerel.yaml; empty means no config volume
    agent_config_map: str = ""

    def __post_init__(self) -> None:
        if self.kubelet_port != KUBELET_PORT_UNSET and not 0 <= self.kubelet_port <= 65535:
            raise ValueError(
                f"kubelet port must be -1 or between 0 and 65535, got: {self.kubelet_port}"
            )
        # Accept any iterable of names but always store a frozenset
        if not isinstance(self.ignored_namespaces, frozenset):
            object.__setattr__(
                self, "ignored_namespaces", frozenset(self.ignored_namespaces)
            )

    @property
    def kubelet_port_configured(self) -> bool:
        return self.kubelet_port != KUBELET_PORT_UNSET


@dataclass(frozen=True)
class Settings:
    injector: InjectorConfig
    port: int = 8443
    tls_cert_file: str = "tls/tls.crt"
    tls_key_file: str = "tls/tls.key"
    log_level: str = "INFO"


def _build_parser() -> argparse.ArgumentParser:
    # Every flag defaults to its environment variable, so flags win over env
    parser = argparse.ArgumentParser(
        description="Inject mackerel-container-agent into Pods on admission"
    )
    parser.add_argument(
        "--agentAPIKey",
        dest="agent_api_key",
        default=_get_env("SIDECAR_AGENT_API_KEY", ""),
        help="Mackerel API key for the injected agent",
    )
    parser.add_argument(
        "--agentKubeletPort",
        dest="kubelet_port",
        type=int,
        default=_parse_int("SIDECAR_AGENT_KUBELET_PORT", KUBELET_PORT_UNSET),
        help="Kubelet port; -1 lets the agent discover it",
    )
    # Allow both SIDECAR_AGENT_KUBELET_INSECURE_TLS and legacy SIDECAR_AGENT_KUBELET_INSECURE_PORT
    insecure_default = _parse_bool(
        "SIDECAR_AGENT_KUBELET_INSECURE_TLS",
        _parse_bool("SIDECAR_AGENT_KUBELET_INSECURE_PORT", False),
    )
    parser.add_argument(
        "--agentKubeletInsecureTLS",
        dest="kubelet_insecure_tls",
        action=argparse.BooleanOptionalAction,
        default=insecure_default,
        help="Skip verifying the kubelet's TLS certificate",
    )
    parser.add_argument(
        "--ignoreNamespace",
        dest="ignored_namespaces",
        action="append",
        default=None,
        help="Do not inject into Pods of this namespace (repeatable)",
    )
    parser.add_argument(
        "--agentImage",
        dest="agent_image",
        default=_get_env("SIDECAR_AGENT_IMAGE", DEFAULT_AGENT_IMAGE),
    )
    parser.add_argument(
        "--agentConfigMap",
        dest="agent_config_map",
        default=_get_env("SIDECAR_AGENT_CONFIG_MAP", ""),
        help="ConfigMap holding mackerel.yaml to mount into the agent",
    )
    parser.add_argument("--port", type=int, default=_parse_int("PORT", 8443))
    parser.add_argument(
        "--tls-cert", dest="tls_cert_file", default=_get_env("TLS_CERT_FILE", "tls/tls.crt")
    )
    parser.add_argument(
        "--tls-key", dest="tls_key_file", default=_get_env("TLS_KEY_FILE", "tls/tls.key")
    )
    parser.add_argument(
        "--log-level", dest="log_level", default=_get_env("LOG_LEVEL", "INFO")
    )
    return parser


def load(argv: Sequence[str] = ()) -> Settings:
    """
    Build Settings from environment variables, overridden by command-line flags.
    Exits with a usage error when the resulting injector config is invalid.
    """
    parser = _build_parser()
    args = parser.parse_args(list(argv))

    namespaces = set(DEFAULT_IGNORED_NAMESPACES)
    namespaces.update(_parse_list("SIDECAR_IGNORE_NAMESPACES"))
    namespaces.update(args.ignored_namespaces or [])

    try:
        injector = InjectorConfig(
            agent_api_key=args.agent_api_key,
            kubelet_port=args.kubelet_port,
            kubelet_insecure_tls=args.kubelet_insecure_tls,
            ignored_namespaces=frozenset(namespaces),
            agent_image=args.agent_image,
            agent_config_map=args.agent_config_map,
        )
    except ValueError as e:
        parser.error(str(e))

    return Settings(
        injector=injector,
        port=args.port,
        tls_cert_file=args.tls_cert_file,
        tls_key_file=args.tls_key_file,
        log_level=args.log_level.upper(),
    )
