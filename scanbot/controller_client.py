"""
HTTP client for the remote motion controller service.

The controller only offers fire-and-forget move commands and best-effort
status endpoints. Every verb raises ControllerTransportError when the
request cannot be delivered or the service answers with an error status;
callers decide whether that is fatal.
"""
import logging
from typing import Any, Dict, Optional

import httpx

from .config import settings
from .models import CoordinatedMotionState

logger = logging.getLogger(__name__)

STOP_AXES = ("x", "y", "p", "r", "x1", "x2")


class ControllerTransportError(Exception):
    """Raised when a command could not be delivered to the motion controller."""

    pass


def parse_motion_state(payload: Any) -> Optional[CoordinatedMotionState]:
    """Read an idle/queued/running state out of a loosely shaped response.

    Returns None for anything unrecognised.
    """
    value = payload
    if isinstance(payload, dict):
        value = payload.get("state", payload.get("status"))
    if not isinstance(value, str):
        return None
    try:
        return CoordinatedMotionState(value.strip().lower())
    except ValueError:
        return None


class MotionControllerClient:
    """Async client for the controller's /moveabs, /stop, /pos and /motionstate verbs."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout_s: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.controller_url).rstrip("/")
        self.timeout_s = timeout_s if timeout_s is not None else settings.request_timeout_s
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout_s,
            transport=transport,
            headers={"Cache-Control": "no-store"},
        )
        logger.info(f"Motion controller client targeting {self.base_url}")

    async def close(self) -> None:
        await self._client.aclose()

    async def _request(self, verb: str, method: str, path: str, **kwargs) -> Any:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise ControllerTransportError(f"{verb} failed: {e}") from e

        if response.is_error:
            detail = response.text
            raise ControllerTransportError(f"{verb} {response.status_code} {detail}".strip())

        try:
            return response.json()
        except ValueError:
            # Some endpoints answer with plain text
            return response.text or None

    # ========== Commands ==========

    async def move_absolute(self, x: float, y: float, p: float, r: float) -> Any:
        """Queue an absolute move; returns as soon as the controller acknowledges it.

        The controller calls the vertical stage y; the console shows it as scene Z.
        """
        payload = {"x": round(x), "y": round(y), "p": round(p), "r": round(r)}
        logger.debug(f"moveabs {payload}")
        return await self._request("moveabs", "POST", "/moveabs", json=payload)

    async def stop(self, axis: str) -> Any:
        return await self._request(f"stop {axis}", "POST", "/stop", json={"axis": axis})

    # ========== Status ==========

    async def poll_status(self, refresh: bool = True) -> Dict[str, Any]:
        params = {"refresh": "true"} if refresh else None
        data = await self._request("pos", "GET", "/pos", params=params)
        return data if isinstance(data, dict) else {"line": data}

    async def poll_coordinated_motion_state(self) -> Optional[CoordinatedMotionState]:
        data = await self._request("motionstate", "GET", "/motionstate")
        return parse_motion_state(data)
