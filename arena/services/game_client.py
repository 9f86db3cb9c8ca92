"""Game service (Lichess-compatible) API client"""

import asyncio
import aiohttp
from dataclasses import dataclass
from typing import Any, Dict, Optional

from arena.config import Config
from arena.constants import ContestConstants
from arena.utils.exceptions import ExternalServiceError
from arena.utils.logger import setup_logger

logger = setup_logger(__name__)

SERVICE_NAME = "Game service"


@dataclass(frozen=True)
class CreatedContest:
    game_id: str

    @classmethod
    def from_payload(cls, payload: Any) -> "CreatedContest":
        if not isinstance(payload, dict):
            raise ExternalServiceError(SERVICE_NAME, "create response is not an object")
        # Challenge creation nests the contest under "challenge"
        contest = payload.get("challenge", payload)
        game_id = contest.get("id") if isinstance(contest, dict) else None
        if not isinstance(game_id, str) or not game_id:
            raise ExternalServiceError(SERVICE_NAME, "create response has no contest id")
        return cls(game_id=game_id)


@dataclass(frozen=True)
class ActionResult:
    ok: bool

    @classmethod
    def from_payload(cls, payload: Any) -> "ActionResult":
        if not isinstance(payload, dict) or not isinstance(payload.get("ok"), bool):
            raise ExternalServiceError(SERVICE_NAME, "response has no boolean 'ok' field")
        return cls(ok=payload["ok"])


@dataclass(frozen=True)
class Account:
    username: str

    @classmethod
    def from_payload(cls, payload: Any) -> "Account":
        username = payload.get("username") if isinstance(payload, dict) else None
        if not isinstance(username, str) or not username:
            raise ExternalServiceError(SERVICE_NAME, "account response has no username")
        return cls(username=username)


class GameServiceClient:
    """Creates, accepts and adjusts contests on behalf of users via their bearer tokens"""

    def __init__(self, base_url: Optional[str] = None, timeout: Optional[float] = None):
        self.base_url = (base_url or Config.GAME_SERVICE_URL).rstrip("/")
        self.timeout = aiohttp.ClientTimeout(
            total=timeout if timeout is not None else Config.EXTERNAL_CALL_TIMEOUT_SECONDS
        )

    def _get_headers(self, token: str) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {token}",
            "Accept": "application/json",
        }

    async def _request(self, method: str, path: str, token: str,
                       data: Optional[Dict[str, str]] = None) -> Any:
        url = f"{self.base_url}{path}"
        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.request(
                    method, url, data=data, headers=self._get_headers(token)
                ) as response:
                    if response.status == 429:
                        logger.warning(f"Game service rate limited {method} {path}")
                        raise ExternalServiceError(SERVICE_NAME, "rate limited")
                    if response.status != 200:
                        error_text = await response.text()
                        logger.error(f"Game service error on {method} {path}: {response.status} - {error_text}")
                        raise ExternalServiceError(SERVICE_NAME, f"HTTP {response.status}")
                    return await response.json(content_type=None)
        except aiohttp.ClientError as e:
            logger.error(f"Network error connecting to game service: {e}")
            raise ExternalServiceError(SERVICE_NAME, f"network error: {e}")
        except asyncio.TimeoutError:
            logger.error(f"Game service request {method} {path} timed out")
            raise ExternalServiceError(SERVICE_NAME, "request timed out")
        except ValueError as e:
            logger.error(f"Game service returned invalid JSON for {method} {path}: {e}")
            raise ExternalServiceError(SERVICE_NAME, "invalid JSON response")

    async def create_contest(self, opponent_username: str, token: str, clock_limit: int,
                             increment: int, color: str) -> CreatedContest:
        """Create a rated contest against opponent_username, acting as the token's owner"""
        body = {
            "rated": "true" if ContestConstants.RATED else "false",
            "clock.limit": str(clock_limit),
            "clock.increment": str(increment),
            "color": color,
            "variant": ContestConstants.VARIANT,
            "rules": ContestConstants.RULES,
        }
        payload = await self._request("POST", f"/api/challenge/{opponent_username}", token, data=body)
        contest = CreatedContest.from_payload(payload)
        logger.info(f"Created contest {contest.game_id} against {opponent_username}")
        return contest

    async def accept_contest(self, game_id: str, token: str) -> ActionResult:
        """Accept a pending contest as the token's owner"""
        payload = await self._request("POST", f"/api/challenge/{game_id}/accept", token)
        return ActionResult.from_payload(payload)

    async def add_time(self, game_id: str, seconds: int, token: str) -> ActionResult:
        """Add seconds to the clock of the token owner's opponent"""
        payload = await self._request("POST", f"/api/round/{game_id}/add-time/{seconds}", token)
        return ActionResult.from_payload(payload)

    async def get_account(self, token: str) -> Account:
        """Resolve the account that owns a bearer token"""
        payload = await self._request("GET", "/api/account", token)
        return Account.from_payload(payload)
