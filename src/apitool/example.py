"""Example of extending APITool with the endpoints of a specific API.

Run with ``python -m apitool.example``; the configuration is read from the
file named by ``APITOOL_CONFIG_PATH``, or the packaged ``default.json``.
"""

import asyncio
import enum

import httpx
import pydantic
import structlog

from .client import APITool, APIToolError, Auth
from .config import APIConfig, configure_logging, default_config

logger = structlog.get_logger(__name__)


class APIUnavailableError(APIToolError):
    """Raised when the API reports itself as unavailable."""


class User(pydantic.BaseModel):
    """User record returned by the user endpoint."""

    id: int | str
    username: str = ""
    email: str = ""


class HackableAppAPI(APITool):
    """Client for the Hackable App API."""

    class Status(enum.IntEnum):
        AVAILABLE = 0
        UNAVAILABLE = 1

    async def create_user(self, username: str, password: str, email: str) -> User:
        data = await self.do_post(
            self.endpoints["user"],
            Auth.TOKEN,
            json={"username": username, "password": password, "email": email},
        )
        return User.model_validate(data)

    async def delete_user(self, user_id: int | str):
        return await self.do_delete(f"{self.endpoints['user']}/{user_id}", Auth.TOKEN)

    async def get_status(self) -> "HackableAppAPI.Status":
        return self.Status(await self.do_get(self.endpoints["status"], Auth.NONE))


async def create_and_delete_user(api: HackableAppAPI):
    """Check the API is available, then create and delete a user."""
    username, password, email = "hacker", "letmein", "hacker@raxis.com"

    if await api.get_status() is HackableAppAPI.Status.UNAVAILABLE:
        msg = "The API is currently inaccessible."
        raise APIUnavailableError(msg)

    user = await api.create_user(username, password, email)
    logger.info("Created user", user_id=user.id)
    return await api.delete_user(user.id)


async def run(config: APIConfig):
    async with HackableAppAPI(config) as api:
        return await create_and_delete_user(api)


def main() -> int:
    config = default_config()
    configure_logging(config.log_level)
    try:
        result = asyncio.run(run(config))
    except (APIToolError, httpx.HTTPError):
        logger.exception("Example scenario failed")
        return 1
    logger.info("Example scenario finished", result=result)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
