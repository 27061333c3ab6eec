from dataclasses import dataclass, field
from typing import Any

from kubernetes import client

from .config import InjectorConfig

# Reserved; a Pod with a container of this name is treated as already injected
SIDECAR_CONTAINER_NAME = "mackerel-container-agent"
CONFIG_VOLUME_NAME = "mackerel-container-agent-config"
CONFIG_MOUNT_PATH = "/etc/mackerel"
CONFIG_FILE_NAME = "mackerel.yaml"

# Only used to turn V1 models into plain camelCase dicts; never talks to a cluster
_serializer = client.ApiClient()


@dataclass(frozen=True)
class SidecarFragment:
    container: dict[str, Any]
    volumes: tuple[dict[str, Any], ...] = field(default_factory=tuple)

    @property
    def volume_names(self) -> tuple[str, ...]:
        return tuple(v["name"] for v in self.volumes)


def _field_env(name: str, field_path: str) -> client.V1EnvVar:
    return client.V1EnvVar(
        name=name,
        value_from=client.V1EnvVarSource(
            field_ref=client.V1ObjectFieldSelector(field_path=field_path)
        ),
    )


def agent_args(config: InjectorConfig) -> list[str]:
    """Kubelet flags for the agent; empty when the port is left to auto-discovery."""
    if not config.kubelet_port_configured:
        return []
    return [
        f"--kubelet-port={config.kubelet_port}",
        f"--kubelet-insecure-tls={'true' if config.kubelet_insecure_tls else 'false'}",
    ]


def build_sidecar(config: InjectorConfig) -> SidecarFragment:
    """
    Build the mackerel-container-agent container (and its volumes) from config alone.
    Deterministic and free of I/O, so it is recomputed for every request.
    """
    env = [
        client.V1EnvVar(name="MACKEREL_APIKEY", value=config.agent_api_key),
        client.V1EnvVar(name="MACKEREL_CONTAINER_PLATFORM", value="kubernetes"),
        _field_env("MACKEREL_KUBERNETES_KUBELET_HOST", "status.hostIP"),
        _field_env("MACKEREL_KUBERNETES_NAMESPACE", "metadata.namespace"),
        _field_env("MACKEREL_KUBERNETES_POD_NAME", "metadata.name"),
    ]
    volumes = []
    mounts = None

    if config.agent_config_map:
        env.append(
            client.V1EnvVar(
                name="MACKEREL_AGENT_CONFIG",
                value=f"{CONFIG_MOUNT_PATH}/{CONFIG_FILE_NAME}",
            )
        )
        volumes.append(
            client.V1Volume(
                name=CONFIG_VOLUME_NAME,
                config_map=client.V1ConfigMapVolumeSource(name=config.agent_config_map),
            )
        )
        mounts = [
            client.V1VolumeMount(
                name=CONFIG_VOLUME_NAME, mount_path=CONFIG_MOUNT_PATH, read_only=True
            )
        ]

    container = client.V1Container(
        name=SIDECAR_CONTAINER_NAME,
        image=config.agent_image,
        args=agent_args(config) or None,
        env=env,
        volume_mounts=mounts,
    )

    return SidecarFragment(
        container=_serializer.sanitize_for_serialization(container),
        volumes=tuple(_serializer.sanitize_for_serialization(v) for v in volumes),
    )
