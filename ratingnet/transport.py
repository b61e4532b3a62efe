"""
RatingNet Decryption Transports

A transport carries one user-decrypt request to the oracle and returns its raw
response. Request shape:

    {
        "handle_contract_pairs": [{"handle": "0x..", "contract_address": "0x.."}],
        "grant": Grant.to_request()
    }

Response shape:

    {"values": {"0x<handle>": "<base64 sealed cleartext>"}}

The in-process `DecryptionOracle` is itself a transport. `HttpRelayerTransport`
reaches a relayer service over HTTP and maps its error responses back onto the
RatingNet error taxonomy.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import requests

from . import config
from .errors import MalformedOracleResponse, MalformedRequest, OracleUnavailable, error_from_dict

USER_DECRYPT_PATH = "/v1/user-decrypt"


class DecryptTransport(ABC):

    @abstractmethod
    def user_decrypt(self, request: Dict[str, Any]) -> Dict[str, Any]:
        """
        Execute a user-decrypt request.

        Raises:
            AuthorizationError subclasses for denied requests
            TransientError subclasses when the oracle cannot be reached
        """
        pass


class HttpRelayerTransport(DecryptTransport):
    """User-decrypt over HTTP against a relayer service."""

    def __init__(
        self,
        base_url: str = config.RELAYER_URL,
        timeout: float = config.RELAYER_TIMEOUT,
        session: Optional[Any] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session if session is not None else requests.Session()

    def user_decrypt(self, request):
        url = f"{self.base_url}{USER_DECRYPT_PATH}"
        try:
            response = self.session.post(url, json=request, timeout=self.timeout)
        except requests.RequestException as e:
            raise OracleUnavailable(f"Relayer unreachable: {e}", {"url": url}) from e

        if response.status_code == 200:
            try:
                return response.json()
            except ValueError:
                raise MalformedOracleResponse("Relayer returned invalid JSON", {"url": url}) from None

        if response.status_code >= 500 or response.status_code == 429:
            raise OracleUnavailable(
                f"Relayer responded {response.status_code}",
                {"url": url, "status": response.status_code},
            )

        try:
            problem = response.json().get("detail")
        except (ValueError, AttributeError):
            problem = None
        if isinstance(problem, dict) and "code" in problem:
            raise error_from_dict(problem)
        if 400 <= response.status_code < 500:
            raise MalformedRequest(
                f"Relayer rejected request with {response.status_code}",
                {"url": url, "status": response.status_code, "detail": problem},
            )
        raise MalformedOracleResponse(
            f"Unexpected relayer response {response.status_code}",
            {"url": url, "status": response.status_code},
        )
