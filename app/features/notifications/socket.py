# Notification Fanout - Socket.IO Server

import socketio
from typing import Dict, Optional
from bson import ObjectId
from app.features.auth.dependencies import principal_from_token
from app.features.auth.models import Principal
from app.features.notifications.schemas import clinic_room
from app.features.visits.service import VisitService
from app.core.logging import logger


# Create Socket.IO server with ASGI support
sio = socketio.AsyncServer(
    async_mode="asgi",
    cors_allowed_origins="*",  # In production, restrict this
    logger=False,
    engineio_logger=False,
)

# Store connected principals: {sid: Principal}
connected_principals: Dict[str, Principal] = {}

# Store which clinic channels each socket follows: {sid: set of clinic_ids}
socket_clinics: Dict[str, set] = {}


def authenticate_socket(auth_data) -> Optional[Principal]:
    """
    Authenticate a socket connection using the JWT passed as ``auth.token``.
    
    Returns:
        Principal or None if authentication fails
    """
    if not isinstance(auth_data, dict) or not auth_data.get("token"):
        logger.warning("Socket connection attempted without token")
        return None
    
    principal = principal_from_token(auth_data["token"])
    if principal is None:
        logger.warning("Socket connection with invalid token")
    
    return principal


def clinic_id_from(data) -> Optional[str]:
    """
    Read the clinic id from a channel request.
    
    Accepts {"clinic_id": "..."} or the bare id string. Valid ObjectIds are
    returned in the lowercase form events are published under.
    """
    if isinstance(data, dict):
        data = data.get("clinic_id")
    
    if not isinstance(data, str) or not data:
        return None
    
    return str(ObjectId(data)) if ObjectId.is_valid(data) else data


@sio.event
async def connect(sid, environ, auth):
    """Handle client connection."""
    principal = authenticate_socket(auth)
    
    if principal is None:
        return False  # Reject connection
    
    connected_principals[sid] = principal
    socket_clinics[sid] = set()
    
    logger.info(f"Socket connected: {sid} ({principal.role.value}: {principal.id})")
    
    await sio.emit("connected", {
        "message": "Connected successfully",
        "role": principal.role.value,
        "user_id": principal.id,
    }, room=sid)
    
    return True


@sio.event
async def disconnect(sid):
    """Handle client disconnection."""
    principal = connected_principals.pop(sid, None)
    clinics = socket_clinics.pop(sid, set())
    
    for clinic_id in clinics:
        await sio.leave_room(sid, clinic_room(clinic_id))
    
    if principal:
        logger.info(f"Socket disconnected: {sid} ({principal.role.value}: {principal.id})")
    else:
        logger.info(f"Socket disconnected: {sid}")


@sio.event
async def join_clinic(sid, data):
    """
    Follow a clinic's channel.
    
    Args:
        data: {"clinic_id": "..."} or the clinic id string
    """
    principal = connected_principals.get(sid)
    if not principal:
        await sio.emit("error", {"message": "Not authenticated"}, room=sid)
        return
    
    clinic_id = clinic_id_from(data)
    if not clinic_id:
        await sio.emit("error", {"message": "clinic_id required"}, room=sid)
        return
    
    if not await VisitService.can_subscribe(principal, clinic_id):
        logger.warning(f"{principal.role.value} {principal.id} refused channel of clinic {clinic_id}")
        await sio.emit("error", {"message": "Access denied", "clinic_id": clinic_id}, room=sid)
        return
    
    await sio.enter_room(sid, clinic_room(clinic_id))
    socket_clinics[sid].add(clinic_id)
    
    logger.info(f"{principal.role.value} {principal.id} joined clinic channel {clinic_id}")
    
    await sio.emit("joined", {
        "clinic_id": clinic_id,
        "message": "Joined clinic"
    }, room=sid)


@sio.event
async def leave_clinic(sid, data):
    """
    Stop following a clinic's channel.
    
    Args:
        data: {"clinic_id": "..."} or the clinic id string
    """
    if sid not in connected_principals:
        return
    
    clinic_id = clinic_id_from(data)
    if not clinic_id:
        return
    
    await sio.leave_room(sid, clinic_room(clinic_id))
    socket_clinics[sid].discard(clinic_id)


# Create ASGI app for Socket.IO
socket_app = socketio.ASGIApp(sio)
