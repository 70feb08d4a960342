"""Configuration and logging setup for the iTop API client."""

import json
import logging
import os
import pathlib

import pydantic
import structlog

from . import itopapi

CONFIG_ENV_VAR = "ITOP_CLIENT_CONFIG_PATH"
logger = structlog.get_logger(__name__)


class ClientConfig(pydantic.BaseModel):
    """Connection settings for an iTop API client."""

    url: str = pydantic.Field(description="URL of the iTop REST endpoint")
    user: str = pydantic.Field(description="iTop login")
    password: str = pydantic.Field(description="iTop password", repr=False)
    comment: str = pydantic.Field(
        itopapi.DEFAULT_COMMENT,
        description="Comment recorded in the change history",
    )
    api_version: str = pydantic.Field(
        itopapi.DEFAULT_API_VERSION,
        description="iTop REST API version",
    )
    basic_auth: bool = pydantic.Field(
        True,
        description="Send credentials in an Authorization header",
    )
    timeout: float = pydantic.Field(
        itopapi.DEFAULT_TIMEOUT,
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


def load_config(config_path: str | pathlib.Path) -> ClientConfig:
    """Load configuration from JSON file."""
    path = pathlib.Path(config_path)
    if not path.exists():
        msg = f"Configuration file not found: {config_path}"
        raise FileNotFoundError(msg)

    with path.open("r") as f:
        data = json.load(f)

    return ClientConfig.model_validate(data)


def load_config_from_env() -> ClientConfig:
    """Load configuration from the file named by ``ITOP_CLIENT_CONFIG_PATH``."""
    config_path = os.environ.get(CONFIG_ENV_VAR)
    if not config_path:
        msg = f"Environment variable {CONFIG_ENV_VAR} is not set"
        raise KeyError(msg)
    return load_config(config_path)


def create_client(
    config: ClientConfig,
    transport=None,
    log=None,
) -> itopapi.ITopApiClient:
    """Construct an unconnected client from validated config."""
    return itopapi.ITopApiClient(timeout=config.timeout, transport=transport, log=log)


async def connect_from_config(
    config: ClientConfig,
    transport=None,
) -> itopapi.ITopApiClient:
    """Configure logging, then construct and connect a client.

    The client logs through structlog at ``config.log_level``. It is closed
    again if the connection fails.
    """
    configure_logging(config.log_level)
    client = create_client(config, transport=transport, log=logger)
    try:
        await client.connect(
            url=config.url,
            user=config.user,
            password=config.password,
            comment=config.comment,
            api_version=config.api_version,
            basic_auth=config.basic_auth,
        )
    except BaseException:
        await client.close()
        raise
    logger.info("Created connected client", url=config.url)
    return client
