"""End-to-end workflow over HTTP, plus role gates and error payloads."""

from app.features.auth.models import Role

from conftest import AMOXICILLIN, auth_headers, make_principal


API = "/api/v1"


async def test_clinic_visit_prescription_workflow(client, doctor, patient, pharmacy):
    """Riverside: check-in, start, prescribe, look up, redeem, redeem again."""
    response = await client.post(
        f"{API}/clinics",
        json={"name": "Riverside", "location": "12 River Rd"},
        headers=auth_headers(doctor),
    )
    assert response.status_code == 201
    clinic = response.json()
    
    response = await client.get(f"{API}/clinics/qr/{clinic['access_token']}")
    assert response.status_code == 200
    assert response.json() == {"id": clinic["id"], "name": "Riverside", "location": "12 River Rd"}
    
    response = await client.post(
        f"{API}/visits/check-in",
        json={"clinic_id": clinic["id"]},
        headers=auth_headers(patient),
    )
    assert response.status_code == 201
    visit = response.json()
    assert visit["status"] == "Waiting"
    
    response = await client.get(f"{API}/visits/waiting-room/{clinic['id']}", headers=auth_headers(doctor))
    assert response.status_code == 200
    room = response.json()
    assert room["total"] == 1
    assert room["waiting_patients"][0]["visit_id"] == visit["id"]
    assert room["waiting_patients"][0]["wait_time"] == 0
    
    response = await client.post(f"{API}/visits/start/{visit['id']}", headers=auth_headers(doctor))
    assert response.status_code == 200
    assert response.json()["status"] == "In-Progress"
    
    response = await client.get(f"{API}/visits/waiting-room/{clinic['id']}", headers=auth_headers(doctor))
    assert response.json()["waiting_patients"] == []
    
    response = await client.post(
        f"{API}/prescriptions/issue",
        json={"visit_id": visit["id"], "medications": [AMOXICILLIN]},
        headers=auth_headers(doctor),
    )
    assert response.status_code == 201
    prescription = response.json()
    secret = prescription["redemption_secret"]
    
    response = await client.get(f"{API}/visits/{visit['id']}", headers=auth_headers(patient))
    assert response.status_code == 200
    detail = response.json()
    assert detail["visit"]["status"] == "Completed"
    assert detail["prescription"]["medications"][0]["name"] == "Amoxicillin"
    
    response = await client.get(f"{API}/prescriptions/hash/{secret}")
    assert response.status_code == 200
    assert response.json()["status"] == "Active"
    
    response = await client.post(f"{API}/prescriptions/redeem/{secret}", headers=auth_headers(pharmacy))
    assert response.status_code == 200
    redeemed = response.json()
    assert redeemed["status"] == "Dispensed"
    assert redeemed["dispensed_at"] is not None
    
    response = await client.post(f"{API}/prescriptions/redeem/{secret}", headers=auth_headers(pharmacy))
    assert response.status_code == 409
    assert response.json()["detail"]["error"] == "already_dispensed"
    assert response.json()["detail"]["dispensed_at"] is not None
    
    response = await client.get(f"{API}/prescriptions/hash/{secret}")
    assert response.status_code == 409
    assert response.json()["detail"]["error"] == "conflict"
    
    response = await client.get(f"{API}/prescriptions/my-prescriptions", headers=auth_headers(patient))
    assert response.json()["total"] == 1


async def test_duplicate_check_in_returns_existing_visit(client, clinic, patient):
    headers = auth_headers(patient)
    first = await client.post(f"{API}/visits/check-in", json={"clinic_id": str(clinic.id)}, headers=headers)
    second = await client.post(f"{API}/visits/check-in", json={"clinic_id": str(clinic.id)}, headers=headers)
    
    assert second.status_code == 409
    assert second.json()["detail"] == {
        "error": "conflict",
        "message": "You already have an active visit in this clinic",
        "visit_id": first.json()["id"],
    }


async def test_start_visit_of_other_doctors_clinic(client, clinic, patient, other_doctor):
    visit = await client.post(
        f"{API}/visits/check-in",
        json={"clinic_id": str(clinic.id)},
        headers=auth_headers(patient),
    )
    
    response = await client.post(f"{API}/visits/start/{visit.json()['id']}", headers=auth_headers(other_doctor))
    
    assert response.status_code == 403
    assert response.json()["detail"]["error"] == "forbidden"


async def test_role_gates(client, clinic, patient, doctor):
    response = await client.post(f"{API}/clinics", json={"name": "X", "location": "Y"})
    assert response.status_code == 401
    
    response = await client.post(
        f"{API}/clinics",
        json={"name": "X", "location": "Y"},
        headers=auth_headers(patient),
    )
    assert response.status_code == 403
    
    response = await client.post(
        f"{API}/visits/check-in",
        json={"clinic_id": str(clinic.id)},
        headers=auth_headers(doctor),
    )
    assert response.status_code == 403
    
    response = await client.post(f"{API}/prescriptions/redeem/abc", headers=auth_headers(doctor))
    assert response.status_code == 403
    
    response = await client.get(f"{API}/clinics/my-clinics", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401


async def test_validation_errors_use_common_shape(client, doctor, clinic, patient):
    response = await client.post(
        f"{API}/clinics",
        json={"name": " ", "location": "Y"},
        headers=auth_headers(doctor),
    )
    assert response.status_code == 400
    assert response.json()["detail"]["error"] == "validation_error"
    
    visit = await client.post(
        f"{API}/visits/check-in",
        json={"clinic_id": str(clinic.id)},
        headers=auth_headers(patient),
    )
    response = await client.post(
        f"{API}/prescriptions/issue",
        json={"visit_id": visit.json()["id"], "medications": [{"name": "Amoxicillin"}]},
        headers=auth_headers(doctor),
    )
    assert response.status_code == 400
    assert response.json()["detail"]["error"] == "validation_error"
    
    response = await client.post(f"{API}/visits/check-in", json={}, headers=auth_headers(patient))
    assert response.status_code == 400
    assert response.json()["detail"]["error"] == "validation_error"


async def test_list_and_delete_clinics(client, doctor, other_doctor):
    headers = auth_headers(doctor)
    created = await client.post(f"{API}/clinics", json={"name": "A", "location": "B"}, headers=headers)
    clinic_id = created.json()["id"]
    
    listed = await client.get(f"{API}/clinics/my-clinics", headers=headers)
    assert [c["id"] for c in listed.json()["clinics"]] == [clinic_id]
    
    response = await client.delete(f"{API}/clinics/{clinic_id}", headers=auth_headers(other_doctor))
    assert response.status_code == 403
    
    response = await client.delete(f"{API}/clinics/{clinic_id}", headers=headers)
    assert response.status_code == 200
    
    listed = await client.get(f"{API}/clinics/my-clinics", headers=headers)
    assert listed.json()["total"] == 0


async def test_cancel_and_get_visit(client, clinic, patient):
    headers = auth_headers(patient)
    visit = await client.post(f"{API}/visits/check-in", json={"clinic_id": str(clinic.id)}, headers=headers)
    
    response = await client.post(f"{API}/visits/cancel/{visit.json()['id']}", headers=headers)
    assert response.status_code == 200
    assert response.json()["status"] == "Cancelled"
    
    response = await client.get(f"{API}/visits/{visit.json()['id']}", headers=auth_headers(make_principal(Role.PATIENT)))
    assert response.status_code == 403
    
    response = await client.post(f"{API}/visits/cancel/{visit.json()['id']}", headers=headers)
    assert response.status_code == 409
    assert response.json()["detail"]["error"] == "invalid_state"


async def test_health(client):
    response = await client.get("/health")
    
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
