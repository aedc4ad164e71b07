"""Notification fanout and socket authentication."""

import pytest

from app.core.security import create_access_token
from app.features.auth.dependencies import principal_from_token
from app.features.auth.models import Role
from app.features.notifications import socket
from app.features.notifications.schemas import PATIENT_CHECKED_IN, clinic_room
from app.features.notifications.service import NotificationService
from app.features.notifications.socket import authenticate_socket, clinic_id_from
from app.features.visits.models import VisitStatus
from app.features.visits.service import VisitService

from conftest import RecordingSocketServer


class BrokenSocketServer:
    async def emit(self, *args, **kwargs):
        raise ConnectionError("transport down")


async def test_publish_without_server_is_dropped():
    NotificationService.set_socketio(None)
    
    assert await NotificationService.patient_checked_in("c1", "v1") is False


async def test_publish_failure_does_not_reach_caller(db, clinic, patient):
    NotificationService.set_socketio(BrokenSocketServer())
    try:
        assert await NotificationService.visit_updated("c1", "v1", "Completed") is False
        
        visit = await VisitService.check_in(patient, str(clinic.id))
        assert visit.status == VisitStatus.WAITING
    finally:
        NotificationService.set_socketio(None)


async def test_events_go_to_clinic_room(notifications):
    assert await NotificationService.patient_checked_in("c1", "v1") is True
    
    assert notifications.events(PATIENT_CHECKED_IN) == [({"clinic_id": "c1", "visit_id": "v1"}, "clinic_c1")]


def test_socket_authentication():
    token = create_access_token("doctor-1", "doctor")
    
    principal = authenticate_socket({"token": token})
    
    assert principal.id == "doctor-1"
    assert principal.role == Role.DOCTOR
    assert authenticate_socket(None) is None
    assert authenticate_socket({}) is None
    assert authenticate_socket({"token": "garbage"}) is None


def test_token_with_unknown_role_is_rejected():
    assert principal_from_token(create_access_token("x", "janitor")) is None


def test_socket_auth_payload_must_be_a_mapping():
    token = create_access_token("doctor-1", "doctor")
    
    assert authenticate_socket(token) is None
    assert authenticate_socket(["token"]) is None


def test_clinic_id_from_channel_requests():
    clinic_id = "65a1f0c2e4b0a1b2c3d4e5f6"
    
    assert clinic_id_from({"clinic_id": clinic_id}) == clinic_id
    assert clinic_id_from(clinic_id.upper()) == clinic_id
    assert clinic_id_from("not-an-id") == "not-an-id"
    assert clinic_id_from(None) is None
    assert clinic_id_from(42) is None
    assert clinic_id_from(["clinic"]) is None
    assert clinic_id_from({"clinic_id": 7}) is None


@pytest.fixture
def socket_server(monkeypatch):
    server = RecordingSocketServer()
    monkeypatch.setattr(socket, "sio", server)
    return server


async def test_join_clinic_with_bare_id_string(db, clinic, doctor, socket_server, monkeypatch):
    monkeypatch.setitem(socket.connected_principals, "sid-1", doctor)
    monkeypatch.setitem(socket.socket_clinics, "sid-1", set())
    
    await socket.join_clinic("sid-1", str(clinic.id).upper())
    
    assert socket_server.rooms["sid-1"] == {clinic_room(str(clinic.id))}
    assert socket.socket_clinics["sid-1"] == {str(clinic.id)}
    assert [event for event, _, _ in socket_server.emitted] == ["joined"]
    
    await socket.leave_clinic("sid-1", {"clinic_id": str(clinic.id)})
    
    assert socket_server.rooms["sid-1"] == set()
    assert socket.socket_clinics["sid-1"] == set()


async def test_join_clinic_rejects_malformed_payloads(db, clinic, doctor, socket_server, monkeypatch):
    monkeypatch.setitem(socket.connected_principals, "sid-2", doctor)
    monkeypatch.setitem(socket.socket_clinics, "sid-2", set())
    
    for payload in (None, 42, ["clinic"], {"clinic": str(clinic.id)}):
        await socket.join_clinic("sid-2", payload)
        await socket.leave_clinic("sid-2", payload)
    
    errors = socket_server.events("error")
    assert len(errors) == 4
    assert all(data["message"] == "clinic_id required" for data, _ in errors)
    assert socket_server.rooms == {}
