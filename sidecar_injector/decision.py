"""
Admission decision engine.

decide() turns one admission request into one admission response. It reads
only the frozen InjectorConfig and the request itself, does no I/O and keeps
no state between calls, so any number of requests may be decided concurrently.

The engine fails open: malformed Pods, ineligible Pods and internal errors
all produce an allowed response without a patch. It never denies a Pod.
"""

import logging
from typing import Optional

from .config import InjectorConfig
from .helpers import check_eligibility, encode_patch, generate_patch, request_namespace
from .models import PATCH_TYPE_JSON_PATCH, AdmissionRequestModel, AdmissionResponse

log = logging.getLogger("sidecar-injector")


def _pass_through(req: AdmissionRequestModel, result: str) -> AdmissionResponse:
    return AdmissionResponse(uid=req.uid, allowed=True, result=result)


def decide(
    req: AdmissionRequestModel,
    config: InjectorConfig,
    logger: Optional[logging.Logger] = None,
) -> AdmissionResponse:
    logger = logger or log
    ns = req.namespace
    pod_name = ""

    try:
        verdict = check_eligibility(req, config)
        if verdict.pod is not None:
            ns = request_namespace(req, verdict.pod)
            pod_name = verdict.pod.name

        if verdict.malformed:
            logger.warning(
                "Malformed pod in admission request uid=%s ns=%s: %s; allowing without mutation",
                req.uid,
                ns,
                verdict.reason,
            )
            return _pass_through(req, verdict.reason)

        if not verdict.eligible:
            logger.info(
                "Decision: uid=%s ns=%s pod=%s -> skip (%s)",
                req.uid,
                ns,
                pod_name,
                verdict.reason,
            )
            return _pass_through(req, verdict.reason)

        operations = tuple(generate_patch(verdict.pod, verdict.fragment))
        encoded = encode_patch(list(operations))
    except Exception:
        # Skipping the sidecar degrades monitoring; denying would block the Pod
        logger.exception(
            "Failed to build sidecar patch for uid=%s ns=%s pod=%s; allowing without mutation",
            req.uid,
            ns,
            pod_name,
        )
        return _pass_through(req, "internal error while building patch")

    logger.info(
        "Decision: uid=%s ns=%s pod=%s -> inject (%d patch operations)",
        req.uid,
        ns,
        pod_name,
        len(operations),
    )
    return AdmissionResponse(
        uid=req.uid,
        allowed=True,
        operations=operations,
        patch=encoded,
        patch_type=PATCH_TYPE_JSON_PATCH,
        result="sidecar injected",
    )
