"""API Tool.

Base class for REST API clients: host configuration, Basic and token
authorization headers, proxy routing and a generic asynchronous request
method that subclasses extend with API-specific endpoints.

Exports:
    APITool: Base client with authentication and request dispatch.
    Auth: Enumeration of authentication modes.
    APIConfig: Pydantic model for the client configuration.
"""

from .client import (
    APITool,
    APIToolError,
    Auth,
    ConfigurationError,
    TokenError,
    join_url,
)
from .config import (
    DEFAULT_TIMEOUT,
    APIConfig,
    configure_logging,
    default_config,
    load_config,
)

__version__ = "1.1.0"

__all__ = [
    "DEFAULT_TIMEOUT",
    "APIConfig",
    "APITool",
    "APIToolError",
    "Auth",
    "ConfigurationError",
    "TokenError",
    "__version__",
    "configure_logging",
    "default_config",
    "join_url",
    "load_config",
]
