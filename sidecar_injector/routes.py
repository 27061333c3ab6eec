import logging

from flask import Blueprint, jsonify, request

from .decision import decide
from .helpers import make_admission_response
from .models import AdmissionResponse, AdmissionReviewModel

log = logging.getLogger("sidecar-injector")


def create_routes(settings):
    bp = Blueprint("webhook", __name__)
    config = settings.injector

    @bp.route("/health", methods=["GET"])
    def health():
        return {"status": "healthy"}, 200

    @bp.route("/mutate", methods=["POST"])
    def mutate():
        try:
            review_json = request.get_json(silent=True)

            admission = AdmissionReviewModel.from_dict(review_json or {})
            if admission is None:
                # Still allowed: a broken envelope is a transport problem, the failurePolicy decides
                log.warning("Invalid AdmissionReview payload for /mutate")
                return jsonify(make_admission_response(AdmissionResponse(uid=""))), 400

            response = decide(admission.request, config, log)
            log.debug(
                "Admission response uid=%s allowed=%s patched=%s result=%s",
                response.uid,
                response.allowed,
                bool(response.patch),
                response.result,
            )
            return jsonify(make_admission_response(response, admission.api_version))
        except Exception:
            log.error("Error in /mutate", exc_info=True)
            return jsonify(make_admission_response(AdmissionResponse(uid=""))), 500

    return bp
