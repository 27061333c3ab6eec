"""
Models for Kubernetes AdmissionReview and Pod used by the sidecar injector.

Unlike a lenient getter, Pod parsing here is strict: every field the injector
relies on is type-checked and a Pod that does not fit raises PodParseError.
Unknown fields are ignored so that new Kubernetes fields don't break the app.

References:
- AdmissionReview request/response shape:
  https://kubernetes.io/docs/reference/access-authn-authz/extensible-admission-controllers/#request-and-response
- Pod (core/v1) API reference:
  https://kubernetes.io/docs/reference/generated/kubernetes-api/latest/#pod-v1-core
"""

from dataclasses import dataclass, field
from typing import Any, Literal, Optional

PATCH_TYPE_JSON_PATCH = "JSONPatch"


class PodParseError(ValueError):
    """The admission object is not a Pod the injector can reason about."""


def _optional(d: dict[str, Any], key: str, typ: type, where: str):
    # Absent or null is fine; present with the wrong type is not
    v = d.get(key)
    if v is None:
        return None
    if not isinstance(v, typ):
        raise PodParseError(
            f"{where}.{key} must be {typ.__name__}, got: {type(v).__name__}"
        )
    return v


def _string_map(d: dict[str, Any], key: str, where: str) -> dict[str, str]:
    m = _optional(d, key, dict, where) or {}
    for k, v in m.items():
        if not isinstance(k, str) or not isinstance(v, str):
            raise PodParseError(f"{where}.{key} must map strings to strings")
    return dict(m)


def _named_items(
    d: dict[str, Any], key: str, where: str
) -> Optional[tuple[str, ...]]:
    items = _optional(d, key, list, where)
    if items is None:
        return None
    names = []
    for i, item in enumerate(items):
        if not isinstance(item, dict):
            raise PodParseError(f"{where}.{key}[{i}] must be an object")
        name = item.get("name")
        if not isinstance(name, str) or not name:
            raise PodParseError(f"{where}.{key}[{i}].name must be a non-empty string")
        names.append(name)
    return tuple(names)


@dataclass(frozen=True)
class PodSpecView:
    name: str
    namespace: str
    labels: dict[str, str]
    annotations: dict[str, str]
    # None when the array is absent from the Pod, as opposed to present but empty
    container_names: Optional[tuple[str, ...]]
    volume_names: Optional[tuple[str, ...]]
    # initContainers and ephemeralContainers share the container name space
    other_container_names: tuple[str, ...] = ()

    @property
    def has_containers(self) -> bool:
        return self.container_names is not None

    @property
    def all_container_names(self) -> tuple[str, ...]:
        return (self.container_names or ()) + self.other_container_names

    @property
    def has_volumes(self) -> bool:
        return self.volume_names is not None

    @staticmethod
    def from_dict(d: Any) -> "PodSpecView":
        if not isinstance(d, dict):
            raise PodParseError(f"pod must be an object, got: {type(d).__name__}")
        kind = _optional(d, "kind", str, "pod")
        if kind is not None and kind != "Pod":
            raise PodParseError(f"expected kind Pod, got: {kind}")

        meta = _optional(d, "metadata", dict, "pod") or {}
        # The patch adds under /spec, so a Pod without one cannot be patched
        spec = d.get("spec")
        if not isinstance(spec, dict):
            raise PodParseError("pod.spec must be an object")

        return PodSpecView(
            name=_optional(meta, "name", str, "metadata")
            or _optional(meta, "generateName", str, "metadata")
            or "",
            namespace=_optional(meta, "namespace", str, "metadata") or "",
            labels=_string_map(meta, "labels", "metadata"),
            annotations=_string_map(meta, "annotations", "metadata"),
            container_names=_named_items(spec, "containers", "spec"),
            volume_names=_named_items(spec, "volumes", "spec"),
            other_container_names=(_named_items(spec, "initContainers", "spec") or ())
            + (_named_items(spec, "ephemeralContainers", "spec") or ()),
        )


@dataclass(frozen=True)
class AdmissionRequestModel:
    uid: str
    namespace: str
    obj: Any
    # Empty when the request carried none; only CREATE is ever injected
    operation: str = ""

    @staticmethod
    def from_dict(d: dict[str, Any]) -> Optional["AdmissionRequestModel"]:
        if not isinstance(d, dict):
            return None
        uid = d.get("uid")
        if not isinstance(uid, str):
            return None
        return AdmissionRequestModel(
            uid=uid,
            namespace=str(d.get("namespace") or ""),
            # Left raw on purpose; PodSpecView.from_dict validates it
            obj=d.get("object"),
            operation=str(d.get("operation") or "").upper(),
        )


@dataclass(frozen=True)
class AdmissionReviewModel:
    request: AdmissionRequestModel
    api_version: str = "admission.k8s.io/v1"

    @staticmethod
    def from_dict(d: Any) -> Optional["AdmissionReviewModel"]:
        if not isinstance(d, dict):
            return None
        req_raw = d.get("request")
        req = (
            AdmissionRequestModel.from_dict(req_raw)
            if isinstance(req_raw, dict)
            else None
        )
        if req is None:
            return None
        api_version = d.get("apiVersion")
        return AdmissionReviewModel(
            request=req,
            api_version=api_version
            if isinstance(api_version, str) and api_version
            else "admission.k8s.io/v1",
        )


@dataclass(frozen=True)
class PatchOperation:
    op: Literal["add", "replace", "remove"]
    path: str
    value: Any = None

    def to_dict(self) -> dict[str, Any]:
        if self.op == "remove":
            return {"op": self.op, "path": self.path}
        return {"op": self.op, "path": self.path, "value": self.value}


@dataclass(frozen=True)
class AdmissionResponse:
    uid: str
    allowed: bool = True
    operations: tuple[PatchOperation, ...] = field(default_factory=tuple)
    # base64 of the JSON patch document, as the API server expects it
    patch: Optional[str] = None
    patch_type: Optional[str] = None
    # Only for logs; not sent back to the API server
    result: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        resp: dict[str, Any] = {"uid": self.uid, "allowed": self.allowed}
        if self.patch:
            resp["patchType"] = self.patch_type or PATCH_TYPE_JSON_PATCH
            resp["patch"] = self.patch
        return resp
