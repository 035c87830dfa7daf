"""Client for the Thunder Compute control API that starts and ends kernel servers."""

import asyncio
import json
import os
import typing as t

from jupyter_server.utils import url_path_join
from tornado.httpclient import AsyncHTTPClient, HTTPClientError, HTTPRequest, HTTPResponse
from tornado.simple_httpclient import HTTPTimeoutError
from traitlets import Any, Bool, Float, Unicode, default
from traitlets.config import LoggingConfigurable

from ..errors import (
    END_SESSION_ERRORS,
    START_SESSION_ERRORS,
    InternalProviderError,
    MalformedResponse,
    Timeout,
    TransportError,
    error_for_status,
)
from ..services.servers.models import ComputeTier, SessionConnectionData

PRODUCTION_ENDPOINT = "https://api.thundercompute.com:8443"
DEVELOPMENT_ENDPOINT = "http://localhost:8080"

# seconds; kernel startups on a fresh instance can be slow
REQUEST_TIMEOUT = 300.0


def canonical_base_url(data: t.Dict[str, t.Any]) -> str:
    """Base URL of a started session, without trailing slashes.

    ``instance_ip``/``port`` take precedence over ``baseUrl``.
    """
    if data.get("instance_ip") and data.get("port"):
        base_url = f"http://{str(data['instance_ip']).strip('/')}:{data['port']}"
    elif data.get("baseUrl"):
        base_url = str(data["baseUrl"])
    else:
        raise MalformedResponse()
    return base_url.rstrip("/")


class ThunderGatewayClient(LoggingConfigurable):
    """Talks to the Thunder Compute control API.

    Every request is bounded by a wall-clock timeout; hitting it cancels the
    in-flight fetch and raises ``Timeout``. Error statuses are mapped onto the
    exceptions in ``thunder_kernels_api.errors``.
    """

    api_endpoint_env = "THUNDER_API_ENDPOINT"
    environment_env = "THUNDER_ENV"

    api_endpoint = Unicode(
        config=True,
        help="""Base URL of the Thunder Compute control API.
        (THUNDER_API_ENDPOINT env var; otherwise chosen from THUNDER_ENV)""",
    )

    @default("api_endpoint")
    def _api_endpoint_default(self):
        endpoint = os.environ.get(self.api_endpoint_env)
        if endpoint:
            return endpoint.rstrip("/")
        if os.environ.get(self.environment_env, "").lower() == "production":
            return PRODUCTION_ENDPOINT
        return DEVELOPMENT_ENDPOINT

    request_timeout = Float(
        REQUEST_TIMEOUT,
        config=True,
        help="""Seconds to wait for a session to start before giving up.""",
    )

    end_session_timeout = Float(
        REQUEST_TIMEOUT,
        config=True,
        help="""Seconds to wait for a session to end before giving up.""",
    )

    validate_cert = Bool(
        True,
        config=True,
        help="""Validate the control API's TLS certificate.""",
    )

    http_client = Any(
        allow_none=True,
        help="""tornado AsyncHTTPClient used for requests.""",
    )

    @default("http_client")
    def _http_client_default(self):
        return AsyncHTTPClient()

    @property
    def start_url(self) -> str:
        return url_path_join(self.api_endpoint, "jupyter", "start")

    @property
    def end_url(self) -> str:
        return url_path_join(self.api_endpoint, "jupyter", "end")

    async def start_session(self, credential: str, tier: ComputeTier) -> SessionConnectionData:
        """Ask the control API to start a kernel server of the given tier."""
        body = json.dumps({"gpuType": tier.gpu_type})
        response = await self._fetch(
            self.start_url,
            credential,
            body=body,
            timeout=self.request_timeout,
            headers={"Content-Type": "application/json"},
        )

        if response.code != 200:
            raise error_for_status(
                response.code, START_SESSION_ERRORS, prefix="Failed to connect to Thunder Compute: "
            )

        try:
            data = json.loads(response.body or b"")
        except ValueError as e:
            raise MalformedResponse(f"Invalid JSON from Thunder Compute server: {e}") from e
        if not isinstance(data, dict):
            raise MalformedResponse()

        self.log.debug(f"Full response data: {json.dumps(_redacted(data), indent=2)}")

        base_url = canonical_base_url(data)
        token = data.get("token")
        if not token:
            raise MalformedResponse("Invalid response from Thunder Compute server: missing token")

        self.log.info(f"Constructed baseUrl: {base_url}")
        return SessionConnectionData(base_url=base_url, token=token)

    async def end_session(self, credential: str) -> None:
        """Ask the control API to end the caller's active session."""
        response = await self._fetch(self.end_url, credential, body="", timeout=self.end_session_timeout)
        if response.code != 200:
            raise error_for_status(response.code, END_SESSION_ERRORS, fallback=InternalProviderError)
        self.log.info("Ended Thunder Compute Jupyter session")

    async def _fetch(
        self,
        url: str,
        credential: str,
        body: str,
        timeout: float,
        headers: t.Optional[t.Dict[str, str]] = None,
    ) -> HTTPResponse:
        request_headers = {"Authorization": f"Bearer {credential}"}
        request_headers.update(headers or {})
        request = HTTPRequest(
            url,
            method="POST",
            headers=request_headers,
            body=body,
            request_timeout=timeout,
            validate_cert=self.validate_cert,
        )

        self.log.debug(f"Making request to {url} with method {request.method}")
        if body:
            self.log.debug(f"Request body: {body}")

        try:
            response = await asyncio.wait_for(
                self.http_client.fetch(request, raise_error=False), timeout=timeout
            )
        except asyncio.TimeoutError:
            self.log.warning(f"Request to {url} timed out after {timeout}s")
            raise Timeout() from None
        except HTTPTimeoutError as e:
            self.log.warning(f"Request to {url} timed out: {e}")
            raise Timeout() from e
        except HTTPClientError as e:
            self.log.error(f"Fetch error details: {e}")
            raise TransportError(f"Could not reach Thunder Compute: {e}") from e
        except OSError as e:
            self.log.error(f"Fetch error details: {e}")
            raise TransportError(f"Could not reach Thunder Compute: {e}") from e

        self.log.debug(f"Response status: {response.code}")
        if response.code != 200:
            self.log.warning(f"Error response body: {_body_text(response)}")
        return response


def _body_text(response: HTTPResponse) -> str:
    return (response.body or b"").decode("utf-8", errors="replace")


def _redacted(data: t.Dict[str, t.Any]) -> t.Dict[str, t.Any]:
    shown = dict(data)
    if shown.get("token"):
        shown["token"] = "<redacted>"
    return shown
