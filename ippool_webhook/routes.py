import logging

from flask import Blueprint, jsonify, request

from .admission import AdmissionDecisionBuilder
from .exceptions import PoolRegistryError
from .helpers import make_admission_response
from .models import AdmissionReviewModel

log = logging.getLogger("ippool-webhook")

PLAIN_TEXT = {"Content-Type": "text/plain; charset=utf-8"}


def create_routes(builder: AdmissionDecisionBuilder | None):
    bp = Blueprint("webhook", __name__)

    @bp.route("/health", methods=["GET"])
    def health():
        return {"status": "healthy"}, 200

    @bp.route("/mutate", methods=["POST"])
    def mutate():
        review_json = request.get_json(silent=True)
        admission = AdmissionReviewModel.from_dict(review_json or {})
        if admission is None:
            log.warning("Invalid AdmissionReview payload for /mutate")
            return "invalid AdmissionReview payload\n", 400, PLAIN_TEXT

        req = admission.request
        if builder is None:
            log.error("Pool registry not configured; cannot decide uid=%s", req.uid)
            return "pool registry not configured\n", 500, PLAIN_TEXT

        try:
            decision = builder.decide(req)
        except PoolRegistryError as e:
            log.error(
                "Registry failure for %s %s ns=%s: %s",
                req.operation.value,
                req.kind,
                req.namespace_name,
                e,
            )
            return "pool registry unavailable\n", 500, PLAIN_TEXT
        except Exception:
            log.error("Error in /mutate", exc_info=True)
            return "internal error\n", 500, PLAIN_TEXT

        return jsonify(
            make_admission_response(
                req.uid,
                allowed=decision.allowed,
                patch=decision.patch,
                message=decision.message,
            )
        )

    return bp
