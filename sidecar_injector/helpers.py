import base64
import json
import logging
from dataclasses import dataclass
from typing import Any, Optional

from .config import InjectorConfig
from .models import (
    AdmissionRequestModel,
    AdmissionResponse,
    PatchOperation,
    PodParseError,
    PodSpecView,
)
from .sidecar import SIDECAR_CONTAINER_NAME, SidecarFragment, build_sidecar

log = logging.getLogger("sidecar-injector")

# Pod containers are immutable after creation, so only CREATE can be patched
INJECTABLE_OPERATIONS = frozenset({"CREATE"})

CONTAINERS_PATH = "/spec/containers"
VOLUMES_PATH = "/spec/volumes"


@dataclass(frozen=True)
class Eligibility:
    """Outcome of the eligibility rules for one request."""

    reason: Optional[str] = None
    # Set once parsing succeeded, so callers never parse the Pod twice
    pod: Optional[PodSpecView] = None
    fragment: Optional[SidecarFragment] = None
    malformed: bool = False

    @property
    def eligible(self) -> bool:
        return self.reason is None


def request_namespace(req: AdmissionRequestModel, pod: PodSpecView | None = None) -> str:
    """The request's namespace is authoritative; generated Pods often leave metadata.namespace empty."""
    if req.namespace:
        return req.namespace
    return pod.namespace if pod is not None else ""


def check_eligibility(
    req: AdmissionRequestModel,
    config: InjectorConfig,
    fragment: SidecarFragment | None = None,
) -> Eligibility:
    """
    Evaluate the injection rules in order; first match wins.
    Never raises on bad input: an unparseable Pod is itself a reason.
    """
    if req.operation not in INJECTABLE_OPERATIONS:
        return Eligibility(reason=f"operation {req.operation or '<none>'} is not injected")

    if req.namespace in config.ignored_namespaces:
        return Eligibility(reason=f"namespace {req.namespace} is ignored")

    try:
        pod = PodSpecView.from_dict(req.obj)
    except PodParseError as e:
        return Eligibility(reason=f"malformed pod: {e}", malformed=True)

    ns = request_namespace(req, pod)
    if ns in config.ignored_namespaces:
        return Eligibility(reason=f"namespace {ns} is ignored", pod=pod)

    # Names are unique across containers, initContainers and ephemeralContainers
    if SIDECAR_CONTAINER_NAME in pod.all_container_names:
        return Eligibility(
            reason=f"container {SIDECAR_CONTAINER_NAME} already present", pod=pod
        )

    fragment = fragment if fragment is not None else build_sidecar(config)
    clashes = sorted(set(fragment.volume_names) & set(pod.volume_names or ()))
    if clashes:
        return Eligibility(
            reason=f"volume name conflict: {', '.join(clashes)}", pod=pod
        )

    return Eligibility(pod=pod, fragment=fragment)


def rejection_reason(req: AdmissionRequestModel, config: InjectorConfig) -> Optional[str]:
    """Explain why a request must pass through untouched, or None when it qualifies."""
    return check_eligibility(req, config).reason


def should_inject(req: AdmissionRequestModel, config: InjectorConfig) -> bool:
    return check_eligibility(req, config).eligible


def _append_ops(
    path: str, existing: tuple[str, ...] | None, values: list[Any]
) -> list[PatchOperation]:
    if not values:
        return []
    if existing is None:
        return [PatchOperation(op="add", path=path, value=list(values))]
    # Index at the observed length; pre-existing entries keep their positions
    start = len(existing)
    return [
        PatchOperation(op="add", path=f"{path}/{start + i}", value=value)
        for i, value in enumerate(values)
    ]


def generate_patch(pod: PodSpecView, fragment: SidecarFragment) -> list[PatchOperation]:
    """Produce a JSONPatch appending the sidecar container and its volumes to the Pod."""
    patch = _append_ops(CONTAINERS_PATH, pod.container_names, [fragment.container])
    patch.extend(_append_ops(VOLUMES_PATH, pod.volume_names, list(fragment.volumes)))
    return patch


def encode_patch(patch: list[PatchOperation]) -> str:
    """Serialize a patch the way AdmissionReview carries it: base64 of the JSON document."""
    doc = json.dumps([op.to_dict() for op in patch], allow_nan=False)
    return base64.b64encode(doc.encode()).decode()


def make_admission_response(
    response: AdmissionResponse, api_version: str = "admission.k8s.io/v1"
) -> dict[str, Any]:
    """Return the AdmissionReview the webhook sends to K8s to allow and optionally patch a Pod."""
    return {
        "apiVersion": api_version,
        "kind": "AdmissionReview",
        "response": response.to_dict(),
    }
