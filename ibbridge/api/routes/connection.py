from fastapi import APIRouter, Depends, Query

from ibbridge.api.deps import get_session_manager
from ibbridge.core.session.manager import SessionManager

router = APIRouter(tags=["Connection"])


@router.post("/connect", response_model=bool)
async def connect(
    address: str = Query(..., description="The IP address of the IBKR Gateway or TWS"),
    port: int = Query(..., ge=1, le=65535, description="The port number to connect to"),
    client_id: int = Query(..., description="The client ID for the connection"),
    sessions: SessionManager = Depends(get_session_manager),
) -> bool:
    """Connect to IBKR, replacing any existing session."""
    return await sessions.connect(address, port, client_id)


@router.get("/is_connected", response_model=bool)
async def is_connected(sessions: SessionManager = Depends(get_session_manager)) -> bool:
    return sessions.is_connected()


@router.post("/disconnect", response_model=None)
async def disconnect(sessions: SessionManager = Depends(get_session_manager)) -> None:
    await sessions.disconnect()
