"""
Connector Control API Routes

REST endpoints the dashboard uses to drive the connector:
status, start/stop/reload/restart, sending a chat line and managing the
member list. Every response carries a success flag.
"""

import asyncio
import logging
import os
import signal
from collections import Counter

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from jack.bot.connector import get_connector
from jack.bot.transport import ConfigurationError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/jack", tags=["jack"])

RESTART_DELAY = 1.0


# ==================== Pydantic Models ====================

class SayRequest(BaseModel):
    """Request to post a chat line as the bot."""
    message: str = Field(min_length=1)


class BulkRemoveRequest(BaseModel):
    """Request to remove members at one level."""
    level: int
    count: int = Field(ge=1)


def _error(message: str, status_code: int = 400) -> JSONResponse:
    return JSONResponse({"success": False, "error": message}, status_code=status_code)


def _exit_process() -> None:
    # The process supervisor brings us back up
    os.kill(os.getpid(), signal.SIGTERM)


# ==================== Lifecycle ====================

@router.get("/status")
async def get_status():
    """Connector status for the dashboard."""
    return get_connector().get_status()


@router.post("/start")
async def start_connector():
    """Start connecting, if credentials are configured."""
    connector = get_connector()
    try:
        await connector.start()
    except ConfigurationError as e:
        return _error(str(e))
    return {"success": True, "message": "Connector starting"}


@router.post("/stop")
async def stop_connector():
    """Close the session and stop reconnecting."""
    await get_connector().stop()
    return {"success": True, "message": "Connector stopped"}


@router.post("/reload")
async def reload_configuration():
    """Re-read configuration files and refresh the moderation policy."""
    connector = get_connector()
    await connector.reload()
    return {"success": True, "configLoaded": connector.get_status()["configLoaded"]}


@router.post("/restart")
async def restart_process():
    """Exit the process shortly after replying so it is restarted clean."""
    logger.warning(f"Process restart requested, exiting in {RESTART_DELAY}s")
    asyncio.get_running_loop().call_later(RESTART_DELAY, _exit_process)
    return {"success": True, "message": "Restarting"}


@router.post("/say")
async def say(request: SayRequest):
    """Post a chat line as the bot."""
    if not await get_connector().say(request.message):
        return _error("Connector is not connected", status_code=503)
    return {"success": True}


# ==================== Members ====================

@router.get("/members")
async def list_members(page: int = 1, limit: int = 50):
    """Paginated member list with a per-level histogram."""
    page = max(page, 1)
    limit = min(max(limit, 1), 500)

    connector = get_connector()
    loop = asyncio.get_running_loop()
    members = await loop.run_in_executor(None, connector.member_store.load)

    start = (page - 1) * limit
    levels = Counter(m.level for m in members)
    return {
        "success": True,
        "members": [m.to_store() for m in members[start:start + limit]],
        "total": len(members),
        "page": page,
        "limit": limit,
        "totalPages": (len(members) + limit - 1) // limit,
        "levelStats": {str(level): count for level, count in sorted(levels.items())},
    }


@router.delete("/members/{uid}")
async def remove_member(uid: str):
    """Remove one member from the list and kick them from the room."""
    removed = await get_connector().remove_member(uid)
    if removed is None:
        return _error(f"Member {uid} not found", status_code=404)
    return {"success": True, "removed": removed.to_store()}


@router.post("/members/bulk-remove")
async def bulk_remove_members(request: BulkRemoveRequest):
    """Remove up to count members at the given level."""
    removed = await get_connector().bulk_remove(request.level, request.count)
    return {"success": True, "removedCount": len(removed), "removed": removed}
