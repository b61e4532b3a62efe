"""
RatingNet Relayer Service

HTTP front for a `DecryptionOracle`:

    POST /v1/user-decrypt   UserDecryptRequest -> {"values": {...}}
    GET  /healthz

Errors are returned as `{"detail": RatingNetError.to_dict()}` with the status
mapped from the error class. In production the `details` field is omitted.
"""

import logging
from typing import Optional

from fastapi import FastAPI, Header, HTTPException

from . import config
from .errors import (
    AuthorizationError,
    GrantExpired,
    InputValidationError,
    InvalidGrant,
    RatingNetError,
    TransientError,
)
from .logging_config import set_request_id
from .models import UserDecryptRequest
from .oracle import DecryptionOracle

logger = logging.getLogger("ratingnet.relayer")


def status_for(err: RatingNetError) -> int:
    if isinstance(err, GrantExpired):
        return 410
    if isinstance(err, (InvalidGrant, InputValidationError)):
        return 400
    if isinstance(err, AuthorizationError):
        return 403
    if isinstance(err, TransientError):
        return 503
    return 500


def problem_for(err: RatingNetError) -> dict:
    problem = err.to_dict()
    if config.is_production():
        problem.pop("details", None)
    return problem


def create_app(oracle: DecryptionOracle) -> FastAPI:
    app = FastAPI(title="RatingNet Relayer")

    @app.get("/healthz")
    def healthz():
        return {"status": "ok", "chain_id": oracle.chain_id, "env": config.ENV}

    @app.post("/v1/user-decrypt")
    def user_decrypt(req: UserDecryptRequest, x_request_id: Optional[str] = Header(default=None)):
        set_request_id(x_request_id)
        try:
            return oracle.user_decrypt(req.model_dump())
        except RatingNetError as e:
            status = status_for(e)
            if status >= 500:
                logger.error("user-decrypt failed: %s", e.code)
            raise HTTPException(status, problem_for(e))

    return app
