from datetime import datetime, timedelta

from .conftest import auth_headers, book, register

def window(start: datetime, hours: int = 1) -> dict:
    return {"start_time": start.isoformat(), "end_time": (start + timedelta(hours=hours)).isoformat()}

class TestBooking:

    def test_patient_books_with_doctor(self, client, patient, doctor):
        appointment = book(client, patient["access_token"], doctor["user"]["id"], patient["user"]["id"],
                           notes="Chest pain")

        assert appointment["status"] == "pending"
        assert appointment["doctor"]["email"] == "doctor@example.com"
        assert appointment["patient"]["email"] == "patient@example.com"
        assert appointment["notes"] == "Chest pain"

    def test_end_must_follow_start(self, client, patient, doctor):
        start = datetime.utcnow() + timedelta(days=1)
        response = client.post("/api/v1/appointments", json={
            "title": "Checkup",
            "doctor_id": doctor["user"]["id"],
            "patient_id": patient["user"]["id"],
            "start_time": start.isoformat(),
            "end_time": start.isoformat(),
        }, headers=auth_headers(patient["access_token"]))

        assert response.status_code == 422
        assert response.json()["message"] == "Validation failed"

    def test_doctor_must_have_doctor_role(self, client, patient):
        other_patient = register(client, "other@example.com")

        response = client.post("/api/v1/appointments", json={
            "title": "Checkup",
            "doctor_id": other_patient["user"]["id"],
            "patient_id": patient["user"]["id"],
            **window(datetime.utcnow() + timedelta(days=1)),
        }, headers=auth_headers(patient["access_token"]))

        assert response.status_code == 404
        assert "Doctor" in response.json()["message"]

    def test_unknown_patient(self, client, admin, doctor):
        response = client.post("/api/v1/appointments", json={
            "title": "Checkup",
            "doctor_id": doctor["user"]["id"],
            "patient_id": "missing",
            **window(datetime.utcnow() + timedelta(days=1)),
        }, headers=auth_headers(admin["access_token"]))

        assert response.status_code == 404

    def test_patient_cannot_book_for_someone_else(self, client, patient, doctor):
        other_patient = register(client, "other@example.com")

        response = client.post("/api/v1/appointments", json={
            "title": "Checkup",
            "doctor_id": doctor["user"]["id"],
            "patient_id": other_patient["user"]["id"],
            **window(datetime.utcnow() + timedelta(days=1)),
        }, headers=auth_headers(patient["access_token"]))

        assert response.status_code == 403

    def test_doctor_books_into_own_calendar(self, client, patient, doctor):
        appointment = book(client, doctor["access_token"], doctor["user"]["id"], patient["user"]["id"])
        assert appointment["doctor_id"] == doctor["user"]["id"]

    def test_timezone_aware_input_stored_as_utc(self, client, patient, doctor):
        response = client.post("/api/v1/appointments", json={
            "title": "Checkup",
            "doctor_id": doctor["user"]["id"],
            "patient_id": patient["user"]["id"],
            "start_time": "2030-05-01T12:00:00+02:00",
            "end_time": "2030-05-01T13:00:00+02:00",
        }, headers=auth_headers(patient["access_token"]))

        assert response.status_code == 201
        assert response.json()["start_time"].startswith("2030-05-01T10:00:00")


class TestAppointmentAccess:

    def test_participants_and_admin_can_read(self, client, patient, doctor, admin):
        appointment = book(client, patient["access_token"], doctor["user"]["id"], patient["user"]["id"])
        outsider = register(client, "outsider@example.com")
        path = f"/api/v1/appointments/{appointment['id']}"

        for who in (patient, doctor, admin):
            assert client.get(path, headers=auth_headers(who["access_token"])).status_code == 200
        assert client.get(path, headers=auth_headers(outsider["access_token"])).status_code == 403

    def test_missing_appointment(self, client, patient):
        response = client.get("/api/v1/appointments/missing", headers=auth_headers(patient["access_token"]))
        assert response.status_code == 404

    def test_listing_is_scoped_to_participants(self, client, patient, doctor, admin):
        book(client, patient["access_token"], doctor["user"]["id"], patient["user"]["id"])
        outsider = register(client, "outsider@example.com")

        mine = client.get("/api/v1/appointments", headers=auth_headers(patient["access_token"])).json()
        theirs = client.get("/api/v1/appointments", headers=auth_headers(outsider["access_token"])).json()
        everything = client.get("/api/v1/appointments", headers=auth_headers(admin["access_token"])).json()

        assert len(mine) == 1
        assert theirs == []
        assert len(everything) == 1

    def test_doctor_and_patient_listings(self, client, patient, doctor):
        book(client, patient["access_token"], doctor["user"]["id"], patient["user"]["id"])

        by_doctor = client.get(f"/api/v1/appointments/doctor/{doctor['user']['id']}",
                               headers=auth_headers(doctor["access_token"]))
        by_patient = client.get(f"/api/v1/appointments/patient/{patient['user']['id']}",
                                headers=auth_headers(doctor["access_token"]))
        assert len(by_doctor.json()) == 1
        assert len(by_patient.json()) == 1

        # Patients cannot browse a doctor's calendar
        response = client.get(f"/api/v1/appointments/doctor/{doctor['user']['id']}",
                              headers=auth_headers(patient["access_token"]))
        assert response.status_code == 403

    def test_user_listing_follows_role(self, client, patient, doctor):
        book(client, patient["access_token"], doctor["user"]["id"], patient["user"]["id"])

        for who in (patient, doctor):
            response = client.get(f"/api/v1/appointments/user/{who['user']['id']}",
                                  headers=auth_headers(who["access_token"]))
            assert response.status_code == 200
            assert len(response.json()) == 1

        response = client.get(f"/api/v1/appointments/user/{doctor['user']['id']}",
                              headers=auth_headers(patient["access_token"]))
        assert response.status_code == 403


class TestAppointmentFilters:

    def test_upcoming_excludes_past_and_cancelled(self, client, patient, doctor, admin):
        token = admin["access_token"]
        now = datetime.utcnow().replace(microsecond=0)
        args = (doctor["user"]["id"], patient["user"]["id"])

        later = book(client, token, *args, start=now + timedelta(days=3))
        sooner = book(client, token, *args, start=now + timedelta(days=1))
        book(client, token, *args, start=now - timedelta(days=1))
        book(client, token, *args, start=now + timedelta(days=2), status="cancelled")

        response = client.get("/api/v1/appointments", params={"upcoming": True}, headers=auth_headers(token))
        assert [a["id"] for a in response.json()] == [sooner["id"], later["id"]]

    def test_today(self, client, patient, doctor, admin):
        token = admin["access_token"]
        midnight = datetime.utcnow().replace(hour=0, minute=0, second=0, microsecond=0)
        args = (doctor["user"]["id"], patient["user"]["id"])

        today = book(client, token, *args, start=midnight + timedelta(minutes=30))
        book(client, token, *args, start=midnight + timedelta(days=1, minutes=30))

        response = client.get("/api/v1/appointments", params={"today": True}, headers=auth_headers(token))
        assert [a["id"] for a in response.json()] == [today["id"]]

    def test_date_range_is_inclusive(self, client, patient, doctor, admin):
        token = admin["access_token"]
        base = datetime(2030, 1, 10, 9, 0)
        args = (doctor["user"]["id"], patient["user"]["id"])

        first = book(client, token, *args, start=base)
        last = book(client, token, *args, start=base + timedelta(days=2))
        book(client, token, *args, start=base + timedelta(days=3))

        response = client.get("/api/v1/appointments", params={
            "start_date": base.isoformat(),
            "end_date": (base + timedelta(days=2)).isoformat(),
        }, headers=auth_headers(token))
        assert [a["id"] for a in response.json()] == [first["id"], last["id"]]

    def test_reversed_date_range(self, client, admin):
        response = client.get("/api/v1/appointments", params={
            "start_date": "2030-01-10T00:00:00",
            "end_date": "2030-01-01T00:00:00",
        }, headers=auth_headers(admin["access_token"]))
        assert response.status_code == 422

    def test_half_open_date_range(self, client, admin):
        response = client.get("/api/v1/appointments", params={"start_date": "2030-01-10T00:00:00"},
                              headers=auth_headers(admin["access_token"]))
        assert response.status_code == 422


class TestAppointmentUpdates:

    def test_partial_update_checks_merged_window(self, client, patient, doctor):
        appointment = book(client, patient["access_token"], doctor["user"]["id"], patient["user"]["id"])
        path = f"/api/v1/appointments/{appointment['id']}"
        headers = auth_headers(patient["access_token"])

        # Moving only the end before the existing start
        response = client.patch(path, json={"end_time": appointment["start_time"]}, headers=headers)
        assert response.status_code == 422
        assert response.json()["errors"][0]["field"] == "end_time"

        response = client.patch(path, json={"title": "Follow-up", "notes": ""}, headers=headers)
        assert response.status_code == 200
        assert response.json()["title"] == "Follow-up"
        assert response.json()["notes"] == ""
        assert response.json()["start_time"] == appointment["start_time"]

    def test_update_is_visible_through_cached_reads(self, client, patient, doctor):
        appointment = book(client, patient["access_token"], doctor["user"]["id"], patient["user"]["id"])
        headers = auth_headers(doctor["access_token"])
        path = f"/api/v1/appointments/{appointment['id']}"
        listing = f"/api/v1/appointments/doctor/{doctor['user']['id']}"

        # Prime the cache
        client.get(path, headers=headers)
        client.get(listing, headers=headers)

        client.patch(f"{path}/status", json={"status": "confirmed"}, headers=headers)

        assert client.get(path, headers=headers).json()["status"] == "confirmed"
        assert client.get(listing, headers=headers).json()[0]["status"] == "confirmed"

    def test_any_status_transition_is_allowed(self, client, patient, doctor):
        appointment = book(client, patient["access_token"], doctor["user"]["id"], patient["user"]["id"])
        path = f"/api/v1/appointments/{appointment['id']}/status"
        headers = auth_headers(patient["access_token"])

        for status in ("completed", "pending", "cancelled", "confirmed"):
            response = client.patch(path, json={"status": status}, headers=headers)
            assert response.status_code == 200
            assert response.json()["status"] == status

    def test_unknown_status_rejected(self, client, patient, doctor):
        appointment = book(client, patient["access_token"], doctor["user"]["id"], patient["user"]["id"])
        response = client.patch(f"/api/v1/appointments/{appointment['id']}/status",
                                json={"status": "rescheduled"},
                                headers=auth_headers(patient["access_token"]))
        assert response.status_code == 422

    def test_outsider_cannot_update_or_delete(self, client, patient, doctor):
        appointment = book(client, patient["access_token"], doctor["user"]["id"], patient["user"]["id"])
        outsider = auth_headers(register(client, "outsider@example.com")["access_token"])
        path = f"/api/v1/appointments/{appointment['id']}"

        assert client.patch(path, json={"title": "Mine now"}, headers=outsider).status_code == 403
        assert client.delete(path, headers=outsider).status_code == 403

    def test_delete(self, client, patient, doctor):
        appointment = book(client, patient["access_token"], doctor["user"]["id"], patient["user"]["id"])
        headers = auth_headers(patient["access_token"])
        path = f"/api/v1/appointments/{appointment['id']}"

        assert len(client.get("/api/v1/appointments", headers=headers).json()) == 1

        assert client.delete(path, headers=headers).status_code == 204
        assert client.get(path, headers=headers).status_code == 404
        assert client.get("/api/v1/appointments", headers=headers).json() == []
