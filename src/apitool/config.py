"""Configuration and logging setup for apitool."""

import json
import logging
import os
import pathlib

import pydantic
import structlog

CONFIG_ENV_VAR = "APITOOL_CONFIG_PATH"
DEFAULT_CONFIG_PATH = pathlib.Path(__file__).parent / "default.json"

DEFAULT_TIMEOUT = 30.0

logger = structlog.get_logger(__name__)


class APIConfig(pydantic.BaseModel):
    """Connection settings for an API tool. Read-only once created."""

    model_config = pydantic.ConfigDict(frozen=True)

    host: str = pydantic.Field(
        min_length=1,
        description="URL of the API, including the protocol",
    )
    username: str | None = pydantic.Field(None, description="Basic auth username")
    password: str | None = pydantic.Field(None, description="Basic auth password")
    proxy: str | None = pydantic.Field(
        None,
        description="URL of a proxy such as an assessment tool like Burp Suite",
    )
    proxy_insecure: bool = pydantic.Field(
        False,
        description="Disable TLS certificate verification when a proxy is set",
    )
    endpoints: dict[str, str] = pydantic.Field(
        default_factory=dict,
        description="Named API endpoints; 'token' is used for token auth",
    )
    token_field: str = pydantic.Field(
        "token",
        min_length=1,
        description="Field of the token response holding the token",
    )
    token_scheme: str | None = pydantic.Field(
        None,
        description="Scheme prefixed to the token header, e.g. 'Bearer'",
    )
    timeout: float = pydantic.Field(
        DEFAULT_TIMEOUT,
        description="Request timeout in seconds",
        gt=0,
    )
    log_level: str = pydantic.Field("INFO", description="Logging level")


def configure_logging(log_level_name: str) -> None:
    """Configure structlog for logfmt output."""
    log_level = getattr(logging, log_level_name.upper(), logging.INFO)
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.EventRenamer("msg"),
            structlog.processors.format_exc_info,
            structlog.processors.LogfmtRenderer(
                key_order=("timestamp", "level", "msg"),
            ),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def load_config(config_path: str | pathlib.Path) -> APIConfig:
    """Load configuration from JSON file."""
    path = pathlib.Path(config_path)
    if not path.exists():
        msg = f"Configuration file not found: {config_path}"
        raise FileNotFoundError(msg)

    with path.open("r") as f:
        data = json.load(f)

    return APIConfig(**data)


def default_config() -> APIConfig:
    """Load the configuration named by the environment or the packaged default."""
    resolved_path = os.environ.get(CONFIG_ENV_VAR, DEFAULT_CONFIG_PATH)
    logger.debug("Loading configuration", path=str(resolved_path))
    return load_config(resolved_path)
