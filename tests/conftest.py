"""Shared fixtures: in-memory MongoDB, principals and a recording Socket.IO stand-in."""

import asyncio
import os
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
from bson import ObjectId
from httpx import ASGITransport, AsyncClient
from mongomock_motor import AsyncMongoMockClient

from app.core.security import create_access_token
from app.database import Database
from app.features.auth.models import Principal, Role
from app.features.notifications.service import NotificationService


class RecordingSocketServer:
    """Captures emitted events instead of sending them."""
    
    def __init__(self):
        self.emitted = []
        self.rooms = {}
    
    async def emit(self, event, data, room=None, **kwargs):
        self.emitted.append((event, data, room))
    
    async def enter_room(self, sid, room, **kwargs):
        self.rooms.setdefault(sid, set()).add(room)
    
    async def leave_room(self, sid, room, **kwargs):
        self.rooms.get(sid, set()).discard(room)
    
    def events(self, name):
        return [(data, room) for event, data, room in self.emitted if event == name]


def gate_after(monkeypatch, owner, name: str, parties: int) -> list:
    """
    Hold callers of ``owner.name`` until ``parties`` of them have returned from it.
    
    mongomock-motor never yields inside an operation, so plain asyncio.gather
    runs contenders one after another. Gating the read step makes every
    contender finish its reads before any of them writes.
    """
    original = getattr(owner, name)
    arrived = []
    released = asyncio.Event()
    
    async def gated(*args, **kwargs):
        result = await original(*args, **kwargs)
        arrived.append(result)
        if len(arrived) >= parties:
            released.set()
        await released.wait()
        return result
    
    monkeypatch.setattr(owner, name, staticmethod(gated))
    return arrived


def make_principal(role: Role) -> Principal:
    return Principal(id=str(ObjectId()), role=role)


def auth_headers(principal: Principal) -> dict:
    token = create_access_token(principal.id, principal.role.value)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
async def db():
    """Fresh in-memory database with all document models and indexes."""
    await Database.connect_db(client=AsyncMongoMockClient())
    yield Database.client
    Database.client = None


@pytest.fixture
def notifications():
    server = RecordingSocketServer()
    NotificationService.set_socketio(server)
    yield server
    NotificationService.set_socketio(None)


@pytest.fixture
def doctor():
    return make_principal(Role.DOCTOR)


@pytest.fixture
def other_doctor():
    return make_principal(Role.DOCTOR)


@pytest.fixture
def patient():
    return make_principal(Role.PATIENT)


@pytest.fixture
def other_patient():
    return make_principal(Role.PATIENT)


@pytest.fixture
def pharmacy():
    return make_principal(Role.PHARMACY)


@pytest.fixture
async def clinic(db, doctor):
    from app.features.clinic.service import ClinicService
    
    return await ClinicService.create_clinic(doctor, "Riverside", "12 River Rd")


@pytest.fixture
async def client(db):
    """HTTP client bound to the ASGI app (lifespan is not run; the db fixture stands in)."""
    from app.main import app
    
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as http:
        yield http


AMOXICILLIN = {
    "name": "Amoxicillin",
    "dosage": "500mg",
    "frequency": "3x/day",
    "duration": "7 days",
}
