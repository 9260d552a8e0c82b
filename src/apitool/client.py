"""Generic REST API client.

Provides the ``APITool`` base class: host configuration, Basic and token
authorization headers, proxy routing and a single asynchronous request
method. Extend it with API-specific methods built on ``request`` and the
``do_*`` shortcuts.
"""

import asyncio
import base64
import enum
import json
import math
import time
from collections.abc import Mapping
from typing import Any

import httpx
import structlog

from .config import APIConfig, default_config

logger = structlog.get_logger(__name__)


class APIToolError(Exception):
    """Base class for errors raised by apitool."""


class ConfigurationError(APIToolError, ValueError):
    """Raised when the configuration cannot satisfy the requested auth mode."""


class TokenError(APIToolError):
    """Raised when the token endpoint response holds no usable token."""


class Auth(enum.Enum):
    """How a request obtains its Authorization header."""

    BASIC = 0
    TOKEN = 1
    NONE = 2


def join_url(host: str, endpoint: str) -> str:
    """Join a host URL and an endpoint path with exactly one slash.

    The host's own path prefix is kept. ``.`` and ``..`` segments of the
    endpoint are resolved inside the endpoint; a ``..`` that would climb
    above the host is rejected. Any query string or fragment on the
    endpoint is appended untouched.

    Args:
        host: Base URL, optionally with a path prefix.
        endpoint: Endpoint path, with or without a leading slash.

    Returns:
        The absolute request URL.

    Raises:
        ValueError: If the endpoint escapes the host path.
    """
    cut = min(
        (i for i in (endpoint.find("?"), endpoint.find("#")) if i != -1),
        default=len(endpoint),
    )
    path, suffix = endpoint[:cut], endpoint[cut:]

    segments: list[str] = []
    for segment in path.split("/"):
        if segment in ("", "."):
            continue
        if segment == "..":
            if not segments:
                msg = f"Endpoint escapes the host path: {endpoint!r}"
                raise ValueError(msg)
            segments.pop()
            continue
        segments.append(segment)

    url = host.rstrip("/")
    if segments:
        url = f"{url}/{'/'.join(segments)}"
        if path.endswith("/"):
            url += "/"
    return url + suffix


def jwt_expires_in(token: str) -> float | None:
    """Return the seconds left before a JWT expires.

    Decodes the payload without verifying the signature. Negative values
    mean the token has already expired. Never raises: anything that is not
    a JWT with a finite numeric ``exp`` claim yields None.
    """
    try:
        _header, payload_b64, _signature = token.split(".")
    except ValueError:
        return None

    # base64url without padding
    payload_b64 += "=" * (-len(payload_b64) % 4)
    try:
        claims = json.loads(base64.urlsafe_b64decode(payload_b64))
    except ValueError:
        return None

    exp = claims.get("exp") if isinstance(claims, dict) else None
    if isinstance(exp, bool) or not isinstance(exp, int | float):
        return None
    try:
        expires_in = exp - time.time()
    except OverflowError:
        return None
    return expires_in if math.isfinite(expires_in) else None


def _log_token_expiry(token: str) -> None:
    expires_in = jwt_expires_in(token)
    if expires_in is None:
        logger.debug("Token is not a JWT with a finite exp claim")
    elif expires_in <= 0:
        # The cached token is kept regardless; there is no refresh.
        logger.warning("Acquired token is already expired", expired_seconds_ago=round(-expires_in, 1))
    else:
        logger.info("Acquired token expiry", expires_in_seconds=round(expires_in, 1))


class APITool:
    """Manages authentication and requests for a REST API.

    Subclass it to add API-specific methods. Every request method is a
    coroutine returning the parsed JSON body. Transport errors raised by
    httpx propagate unchanged.

    The bearer token fetched from ``endpoints["token"]`` is cached for the
    lifetime of the instance. It is never refreshed or invalidated, so a
    long-lived instance will keep sending an expired token.

    The httpx client and the token lock belong to the event loop that first
    uses them. To reuse an instance under another event loop (for example a
    second ``asyncio.run``), ``close()`` it first; the async context manager
    does this on exit.
    """

    Auth = Auth

    def __init__(
        self,
        config: APIConfig | Mapping[str, Any] | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the API tool.

        Args:
            config: Configuration model or a mapping validated into one.
                Defaults to the configuration file named by the
                ``APITOOL_CONFIG_PATH`` environment variable.
            transport: Optional httpx transport, mainly for tests.

        Raises:
            pydantic.ValidationError: If the configuration is invalid.
        """
        if config is None:
            config = default_config()
        elif not isinstance(config, APIConfig):
            config = APIConfig.model_validate(config)

        self.config = config
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._token: str | None = None
        self._token_lock = asyncio.Lock()

    @property
    def host(self) -> str:
        return self.config.host

    @property
    def username(self) -> str | None:
        return self.config.username

    @property
    def password(self) -> str | None:
        return self.config.password

    @property
    def proxy(self) -> str | None:
        return self.config.proxy

    @property
    def endpoints(self) -> Mapping[str, str]:
        return self.config.endpoints

    @property
    def token(self) -> str | None:
        """The cached API token, or None before the first acquisition."""
        return self._token

    @property
    def client_options(self) -> dict[str, Any]:
        """Keyword arguments used to build the httpx client.

        With a proxy configured, requests are routed through it. TLS
        verification is only disabled when ``proxy_insecure`` is also set,
        which is meant for interception proxies during assessments.
        """
        options: dict[str, Any] = {"timeout": self.config.timeout}
        if self.config.proxy:
            options["proxy"] = self.config.proxy
            if self.config.proxy_insecure:
                options["verify"] = False
        return options

    @property
    def client(self) -> httpx.AsyncClient:
        """Get or create the httpx client, created lazily and reused."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(transport=self._transport, **self.client_options)
        return self._client

    async def __aenter__(self):
        """Enter context manager."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Exit context manager and cleanup resources."""
        await self.close()

    async def close(self):
        """Close the HTTP client if open and release the loop-bound lock.

        The cached token survives; the next request opens a new client.
        """
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._token_lock = asyncio.Lock()

    @property
    def basic_authorization(self) -> str:
        """The Basic authorization header built from username and password.

        Raises:
            ConfigurationError: If username or password is not configured.
        """
        if self.username is None or self.password is None:
            msg = "Basic authentication requires both username and password"
            raise ConfigurationError(msg)
        credentials = f"{self.username}:{self.password}".encode()
        return "Basic " + base64.b64encode(credentials).decode("ascii")

    async def get_authorization_header(self, auth: Auth) -> str | None:
        """Get the Authorization header for the given auth mode.

        Values that are not an ``Auth`` member are treated like
        ``Auth.NONE``.

        Returns:
            The header value, or None when no header should be sent.
        """
        if auth is Auth.BASIC:
            return self.basic_authorization
        if auth is Auth.TOKEN:
            token = await self.get_token()
            scheme = self.config.token_scheme
            return f"{scheme} {token}" if scheme else token
        if auth is not Auth.NONE:
            logger.debug("Unknown auth mode, sending no Authorization header", auth=repr(auth))
        return None

    async def request(
        self,
        method: str,
        endpoint: str,
        auth: Auth = Auth.TOKEN,
        **options: Any,
    ) -> Any:
        """Make a request to the API.

        Args:
            method: HTTP method (GET, POST, PUT, PATCH, DELETE).
            endpoint: Endpoint path, joined onto the configured host.
            auth: Authentication to use against the endpoint.
            **options: Passed through to ``httpx.AsyncClient.request``
                (``json``, ``params``, ``headers``, ``timeout``, ...).

        Returns:
            The parsed JSON response, or None for an empty body.

        Raises:
            httpx.HTTPError: If the request fails or returns an error status.
            ValueError: If the endpoint escapes the host path.
        """
        method = method.upper()
        url = join_url(self.host, endpoint)

        headers = httpx.Headers(options.pop("headers", None))
        headers["Accept"] = "application/json"
        authorization = await self.get_authorization_header(auth)
        if authorization is None:
            headers.pop("Authorization", None)
        else:
            headers["Authorization"] = authorization

        start_time = time.time()
        try:
            logger.debug("Making API request", method=method, url=url)
            response = await self.client.request(method, url, headers=headers, **options)
            response.raise_for_status()
            duration = time.time() - start_time
            logger.debug(
                "API request completed",
                status_code=response.status_code,
                duration_seconds=round(duration, 3),
            )
        except httpx.HTTPError:
            duration = time.time() - start_time
            logger.exception(
                "API request failed",
                method=method,
                url=url,
                duration_seconds=round(duration, 3),
            )
            raise

        if not response.content:
            return None
        return response.json()

    async def do_get(self, endpoint: str, auth: Auth = Auth.TOKEN, **options: Any) -> Any:
        """Make a GET request to the API. See ``request``."""
        return await self.request("GET", endpoint, auth, **options)

    async def do_post(self, endpoint: str, auth: Auth = Auth.TOKEN, **options: Any) -> Any:
        """Make a POST request to the API. See ``request``."""
        return await self.request("POST", endpoint, auth, **options)

    async def do_put(self, endpoint: str, auth: Auth = Auth.TOKEN, **options: Any) -> Any:
        """Make a PUT request to the API. See ``request``."""
        return await self.request("PUT", endpoint, auth, **options)

    async def do_patch(self, endpoint: str, auth: Auth = Auth.TOKEN, **options: Any) -> Any:
        """Make a PATCH request to the API. See ``request``."""
        return await self.request("PATCH", endpoint, auth, **options)

    async def do_delete(self, endpoint: str, auth: Auth = Auth.TOKEN, **options: Any) -> Any:
        """Make a DELETE request to the API. See ``request``."""
        return await self.request("DELETE", endpoint, auth, **options)

    async def get_token(self) -> str:
        """Get the API token for authenticated requests.

        The first call POSTs to ``endpoints["token"]`` with Basic
        authentication; later calls return the cached token. Concurrent
        first calls share a single token request.

        Raises:
            ConfigurationError: If no token endpoint is configured.
            TokenError: If the response holds no token.
            httpx.HTTPError: If the token request fails.
        """
        if self._token is not None:
            return self._token

        async with self._token_lock:
            if self._token is None:
                endpoint = self.endpoints.get("token")
                if not endpoint:
                    msg = "Token authentication requires a 'token' endpoint"
                    raise ConfigurationError(msg)

                body = await self.do_post(endpoint, Auth.BASIC)
                token = self.extract_token(body)
                logger.info("Acquired API token", endpoint=endpoint)
                _log_token_expiry(token)
                self._token = token
        return self._token

    def extract_token(self, body: Any) -> str:
        """Pull the token out of the token endpoint's JSON body.

        Reads the ``token_field`` key by default. Override this in a
        subclass when the API nests or names the token differently.

        Raises:
            TokenError: If the body holds no non-empty string token.
        """
        if not isinstance(body, Mapping):
            msg = f"Token response is not a JSON object: {type(body).__name__}"
            raise TokenError(msg)
        token = body.get(self.config.token_field)
        if not isinstance(token, str) or not token:
            msg = f"Token response has no {self.config.token_field!r} field"
            raise TokenError(msg)
        return token
