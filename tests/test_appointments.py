from datetime import time, timedelta
import threading

import pytest

from healthcare_app.core.database import Database
from healthcare_app.core.exceptions import ConflictError
from healthcare_app.models.appointment import Appointment, AppointmentStatus
from healthcare_app.models.user import User
from healthcare_app.schemas.appointment import AppointmentCreate
from healthcare_app.services.appointment_service import AppointmentService
from healthcare_app.services.scheduling_service import SchedulingService

from tests.conftest import auth_headers, create_account, next_monday, test_doctor_data


class TestBooking:

    def test_book_appointment(self, client, book):
        """Test successful booking."""
        response = book("10:00")
        assert response.status_code == 201

        data = response.json()
        assert data["message"] == "Appointment booked successfully"
        appointment = data["appointment"]
        assert appointment["status"] == "scheduled"
        assert appointment["payment_status"] == "pending"
        assert appointment["consultation_fee"] == 150.0
        assert appointment["duration_minutes"] == 30
        assert appointment["appointment_time"] == "10:00:00"
        assert appointment["doctor_name"] == "Gregory House"
        assert appointment["patient_email"] == "test@example.com"
        assert appointment["specialization"] == "Diagnostics"
        assert appointment["virtual_meeting_url"] is None

    def test_book_virtual_appointment(self, client, book):
        """Test virtual bookings receive a meeting link."""
        response = book("11:00", type="virtual")
        assert response.status_code == 201

        url = response.json()["appointment"]["virtual_meeting_url"]
        assert url.startswith("https://meet.healthcare.com/room/")

    def test_fee_is_copied_at_booking(self, client, book, doctor_headers):
        """Test later fee changes do not touch existing bookings."""
        appointment_id = book("10:00").json()["appointment"]["id"]

        response = client.put("/api/v1/doctors/profile", json={"consultation_fee": 300}, headers=doctor_headers)
        assert response.status_code == 200

        response = client.get(f"/api/v1/appointments/{appointment_id}", headers=doctor_headers)
        assert response.json()["consultation_fee"] == 150.0

    def test_book_past_date(self, client, book):
        """Test booking in the past."""
        response = book("10:00", appointment_date="2020-01-06")
        assert response.status_code == 400
        assert response.json()["detail"] == "Appointment date cannot be in the past"

    def test_book_unknown_doctor(self, client, book):
        response = book("10:00", doctor_id=9999)
        assert response.status_code == 404
        assert response.json()["detail"] == "Doctor not found or not available"

    def test_book_unavailable_doctor(self, client, book, doctor_headers):
        """Test booking a doctor who stopped taking appointments."""
        client.put("/api/v1/doctors/profile", json={"is_available": False}, headers=doctor_headers)

        response = book("10:00")
        assert response.status_code == 404

    def test_book_taken_slot(self, client, book):
        """Test double booking the same slot."""
        assert book("10:00").status_code == 201

        response = book("10:00")
        assert response.status_code == 409
        assert response.json()["code"] == "SLOT_TAKEN"
        assert response.json()["detail"] == "Time slot is already booked"

    def test_book_taken_slot_with_seconds(self, client, book, register):
        """Test seconds are dropped before the slot is compared."""
        assert book("10:00").status_code == 201
        other = register(email="other@example.com")

        response = book("10:00:30", headers=auth_headers(other["access_token"]))
        assert response.status_code == 409
        assert response.json()["code"] == "SLOT_TAKEN"

    def test_booked_time_is_whole_minutes(self, client, book):
        response = book("10:30:45.250")
        assert response.status_code == 201
        assert response.json()["appointment"]["appointment_time"] == "10:30:00"

    def test_book_after_cancellation(self, client, book, patient_headers):
        """Test a cancelled slot can be booked again."""
        appointment_id = book("10:00").json()["appointment"]["id"]
        client.delete(f"/api/v1/appointments/{appointment_id}", headers=patient_headers)

        assert book("10:00").status_code == 201

    def test_doctor_cannot_book(self, client, book, doctor_headers):
        """Test booking is patient-only."""
        response = book("10:00", headers=doctor_headers)
        assert response.status_code == 403
        assert response.json()["code"] == "INSUFFICIENT_PERMISSIONS"

    def test_book_requires_authentication(self, client, doctor_with_hours):
        response = client.post("/api/v1/appointments", json={
            "doctor_id": doctor_with_hours,
            "appointment_date": next_monday().isoformat(),
            "appointment_time": "10:00",
            "reason_for_visit": "Persistent headaches for two weeks"
        })
        assert response.status_code == 401

    @pytest.mark.parametrize(
        'overrides',
        [
            {"reason_for_visit": "short"},
            {"duration_minutes": 10},
            {"duration_minutes": 180},
            {"type": "phone"},
            {"appointment_time": "25:00"},
        ],
    )
    def test_book_invalid_payload(self, client, book, overrides):
        response = book(**overrides)
        assert response.status_code == 422

    def test_booking_removes_slot(self, client, book, doctor_with_hours):
        """Test the slot listing reflects a new booking."""
        day = next_monday().isoformat()
        before = client.get(f"/api/v1/doctors/{doctor_with_hours}/availability/{day}").json()
        assert before["total_slots"] == 16

        book("10:00")

        after = client.get(f"/api/v1/doctors/{doctor_with_hours}/availability/{day}").json()
        assert after["total_slots"] == 15


class TestUpdatingAppointments:

    @pytest.fixture
    def appointment_id(self, book):
        response = book("10:00")
        assert response.status_code == 201, response.text
        return response.json()["appointment"]["id"]

    def test_patient_updates_reason(self, client, appointment_id, patient_headers):
        response = client.put(
            f"/api/v1/appointments/{appointment_id}",
            json={"reason_for_visit": "  Headaches and blurred vision  "},
            headers=patient_headers
        )
        assert response.status_code == 200
        assert response.json()["appointment"]["reason_for_visit"] == "Headaches and blurred vision"

    def test_patient_cannot_change_status(self, client, appointment_id, patient_headers):
        """Test patients are limited to date, time and reason."""
        response = client.put(
            f"/api/v1/appointments/{appointment_id}",
            json={"status": "confirmed"},
            headers=patient_headers
        )
        assert response.status_code == 403

    def test_patient_cannot_update_confirmed(self, client, appointment_id, patient_headers, doctor_headers):
        client.put(f"/api/v1/appointments/{appointment_id}", json={"status": "confirmed"}, headers=doctor_headers)

        response = client.put(
            f"/api/v1/appointments/{appointment_id}",
            json={"reason_for_visit": "Headaches and blurred vision"},
            headers=patient_headers
        )
        assert response.status_code == 403

    def test_doctor_walks_status_forward(self, client, appointment_id, doctor_headers):
        """Test the normal lifecycle of a visit."""
        for new_status in ("confirmed", "in-progress", "completed"):
            response = client.put(
                f"/api/v1/appointments/{appointment_id}",
                json={"status": new_status},
                headers=doctor_headers
            )
            assert response.status_code == 200, response.text
            assert response.json()["appointment"]["status"] == new_status

    def test_invalid_status_transition(self, client, appointment_id, doctor_headers):
        """Test skipping straight from scheduled to completed."""
        response = client.put(
            f"/api/v1/appointments/{appointment_id}",
            json={"status": "completed"},
            headers=doctor_headers
        )
        assert response.status_code == 409
        assert response.json()["code"] == "INVALID_STATUS_TRANSITION"

    def test_empty_update(self, client, appointment_id, doctor_headers):
        response = client.put(f"/api/v1/appointments/{appointment_id}", json={}, headers=doctor_headers)
        assert response.status_code == 400
        assert response.json()["detail"] == "No valid fields to update"

    def test_null_fields_are_ignored(self, client, appointment_id, doctor_headers):
        response = client.put(
            f"/api/v1/appointments/{appointment_id}",
            json={"notes": None, "status": None},
            headers=doctor_headers
        )
        assert response.status_code == 400

    def test_reschedule(self, client, appointment_id, patient_headers):
        response = client.put(
            f"/api/v1/appointments/{appointment_id}",
            json={"appointment_time": "14:30"},
            headers=patient_headers
        )
        assert response.status_code == 200
        assert response.json()["appointment"]["appointment_time"] == "14:30:00"

    def test_reschedule_to_same_slot(self, client, appointment_id, patient_headers):
        """Test an appointment does not conflict with itself."""
        response = client.put(
            f"/api/v1/appointments/{appointment_id}",
            json={"appointment_time": "10:00"},
            headers=patient_headers
        )
        assert response.status_code == 200

    def test_reschedule_onto_taken_slot(self, client, appointment_id, book, patient_headers):
        assert book("11:00").status_code == 201

        response = client.put(
            f"/api/v1/appointments/{appointment_id}",
            json={"appointment_time": "11:00"},
            headers=patient_headers
        )
        assert response.status_code == 409
        assert response.json()["code"] == "SLOT_TAKEN"

    def test_reschedule_onto_taken_slot_with_seconds(self, client, appointment_id, book, patient_headers):
        assert book("11:00").status_code == 201

        response = client.put(
            f"/api/v1/appointments/{appointment_id}",
            json={"appointment_time": "11:00:59"},
            headers=patient_headers
        )
        assert response.status_code == 409
        assert response.json()["code"] == "SLOT_TAKEN"

    def test_admin_updates_patient_appointment(self, client, appointment_id, admin_headers, patient_headers):
        """Test an administrator may update any appointment."""
        response = client.put(
            f"/api/v1/appointments/{appointment_id}",
            json={"appointment_time": "15:00", "notes": "Moved by front desk"},
            headers=admin_headers
        )
        assert response.status_code == 200, response.text

        appointment = response.json()["appointment"]
        assert appointment["appointment_time"] == "15:00:00"
        assert appointment["notes"] == "Moved by front desk"

        response = client.get(f"/api/v1/appointments/{appointment_id}", headers=patient_headers)
        assert response.json()["appointment_time"] == "15:00:00"

    def test_reschedule_into_past(self, client, appointment_id, patient_headers):
        response = client.put(
            f"/api/v1/appointments/{appointment_id}",
            json={"appointment_date": "2020-01-06"},
            headers=patient_headers
        )
        assert response.status_code == 400

    def test_switch_to_virtual_adds_meeting_link(self, client, appointment_id, doctor_headers):
        response = client.put(
            f"/api/v1/appointments/{appointment_id}",
            json={"type": "virtual", "notes": "Follow up online"},
            headers=doctor_headers
        )
        assert response.status_code == 200

        appointment = response.json()["appointment"]
        assert appointment["virtual_meeting_url"]
        assert appointment["notes"] == "Follow up online"

    def test_stranger_cannot_update(self, client, appointment_id, register):
        other = register(email="other@example.com")

        response = client.put(
            f"/api/v1/appointments/{appointment_id}",
            json={"reason_for_visit": "Headaches and blurred vision"},
            headers=auth_headers(other["access_token"])
        )
        assert response.status_code == 403

    def test_update_unknown_appointment(self, client, doctor_headers):
        response = client.put("/api/v1/appointments/9999", json={"notes": "x"}, headers=doctor_headers)
        assert response.status_code == 404


class TestCancellingAppointments:

    @pytest.fixture
    def appointment_id(self, book):
        return book("10:00").json()["appointment"]["id"]

    def test_cancel(self, client, appointment_id, patient_headers):
        response = client.delete(f"/api/v1/appointments/{appointment_id}", headers=patient_headers)
        assert response.status_code == 200
        assert response.json() == {
            "message": "Appointment cancelled successfully",
            "appointment_id": appointment_id
        }

        response = client.get(f"/api/v1/appointments/{appointment_id}", headers=patient_headers)
        assert response.json()["status"] == "cancelled"

    def test_cancel_twice(self, client, appointment_id, patient_headers):
        """Test cancelling an already cancelled appointment."""
        client.delete(f"/api/v1/appointments/{appointment_id}", headers=patient_headers)

        response = client.delete(f"/api/v1/appointments/{appointment_id}", headers=patient_headers)
        assert response.status_code == 200

    def test_cancel_completed(self, client, appointment_id, patient_headers, doctor_headers):
        for new_status in ("in-progress", "completed"):
            client.put(f"/api/v1/appointments/{appointment_id}", json={"status": new_status}, headers=doctor_headers)

        response = client.delete(f"/api/v1/appointments/{appointment_id}", headers=patient_headers)
        assert response.status_code == 409
        assert response.json()["code"] == "INVALID_STATUS_TRANSITION"

    def test_doctor_cancels(self, client, appointment_id, doctor_headers):
        response = client.delete(f"/api/v1/appointments/{appointment_id}", headers=doctor_headers)
        assert response.status_code == 200

    def test_stranger_cannot_cancel(self, client, appointment_id, register):
        other = register(email="other@example.com")

        response = client.delete(
            f"/api/v1/appointments/{appointment_id}",
            headers=auth_headers(other["access_token"])
        )
        assert response.status_code == 403

    def test_cancel_unknown(self, client, patient_headers):
        response = client.delete("/api/v1/appointments/9999", headers=patient_headers)
        assert response.status_code == 404


class TestListingAppointments:

    @pytest.fixture
    def booked(self, book):
        return [book(at).json()["appointment"]["id"] for at in ("11:00", "09:00", "15:30")]

    def test_patient_sees_own(self, client, booked, patient_headers, register):
        other = register(email="other@example.com")

        response = client.get("/api/v1/appointments", headers=patient_headers)
        assert response.status_code == 200
        assert response.json()["pagination"]["total_items"] == 3

        response = client.get("/api/v1/appointments", headers=auth_headers(other["access_token"]))
        assert response.json()["appointments"] == []

    def test_doctor_sees_own(self, client, booked, doctor_headers, register):
        response = client.get("/api/v1/appointments", headers=doctor_headers)
        assert len(response.json()["appointments"]) == 3

        colleague = register(**{**test_doctor_data, "email": "colleague@example.com", "license_number": "LIC-2002"})
        response = client.get("/api/v1/appointments", headers=auth_headers(colleague["access_token"]))
        assert response.json()["appointments"] == []

    def test_admin_filters_by_doctor(self, client, booked, admin_headers, doctor_with_hours):
        response = client.get(
            "/api/v1/appointments",
            params={"doctor_id": doctor_with_hours},
            headers=admin_headers
        )
        assert response.json()["pagination"]["total_items"] == 3

        response = client.get("/api/v1/appointments", params={"doctor_id": 9999}, headers=admin_headers)
        assert response.json()["pagination"]["total_items"] == 0

    def test_sort_by_time(self, client, booked, patient_headers):
        response = client.get(
            "/api/v1/appointments",
            params={"sort_by": "appointment_time", "sort_order": "desc"},
            headers=patient_headers
        )
        times = [a["appointment_time"] for a in response.json()["appointments"]]
        assert times == ["15:30:00", "11:00:00", "09:00:00"]

    def test_filter_by_status(self, client, booked, patient_headers):
        client.delete(f"/api/v1/appointments/{booked[0]}", headers=patient_headers)

        response = client.get("/api/v1/appointments", params={"status": "cancelled"}, headers=patient_headers)
        assert [a["id"] for a in response.json()["appointments"]] == [booked[0]]

    def test_filter_by_date_range(self, client, booked, patient_headers):
        day = next_monday()
        response = client.get(
            "/api/v1/appointments",
            params={"start_date": (day + timedelta(days=1)).isoformat()},
            headers=patient_headers
        )
        assert response.json()["appointments"] == []

    def test_pagination(self, client, booked, patient_headers):
        response = client.get("/api/v1/appointments", params={"page": 2, "limit": 2}, headers=patient_headers)

        data = response.json()
        assert len(data["appointments"]) == 1
        assert data["pagination"] == {
            "current_page": 2,
            "total_pages": 2,
            "total_items": 3,
            "items_per_page": 2,
            "has_next_page": False,
            "has_previous_page": True
        }

    def test_invalid_sort_field(self, client, patient_headers):
        response = client.get("/api/v1/appointments", params={"sort_by": "password_hash"}, headers=patient_headers)
        assert response.status_code == 422


class TestConcurrentBooking:
    """Bookings for one slot racing through separate sessions."""

    @pytest.fixture
    def race_database(self, settings, tmp_path):
        db = Database(settings, url=f"sqlite:///{tmp_path / 'race.db'}")
        db.init_db()
        yield db
        db.dispose()

    @pytest.fixture
    def accounts(self, race_database, settings):
        session = race_database.session()
        doctor = create_account(session, settings, **test_doctor_data).doctor
        patients = [
            create_account(session, settings, email=f"patient{n}@example.com")
            for n in range(2)
        ]
        ids = doctor.id, [patient.id for patient in patients]
        session.close()
        return ids

    def _request(self, doctor_id):
        return AppointmentCreate(
            doctor_id=doctor_id,
            appointment_date=next_monday(),
            appointment_time=time(10, 0),
            reason_for_visit="Persistent headaches for two weeks"
        )

    def test_only_one_booking_wins(self, race_database, settings, accounts):
        doctor_id, patient_ids = accounts
        barrier = threading.Barrier(len(patient_ids))
        outcomes = []

        def attempt(patient_id):
            session = race_database.session()
            try:
                patient = session.get(User, patient_id)
                barrier.wait()
                AppointmentService(session, settings).create_appointment(patient, self._request(doctor_id))
                outcomes.append("booked")
            except ConflictError as exc:
                outcomes.append(exc.code)
            finally:
                session.close()

        threads = [threading.Thread(target=attempt, args=(patient_id,)) for patient_id in patient_ids]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert sorted(outcomes) == ["SLOT_TAKEN", "booked"]

        session = race_database.session()
        assert session.query(Appointment).filter(
            Appointment.status == AppointmentStatus.SCHEDULED
        ).count() == 1
        session.close()

    def test_unique_index_backstops_conflict_check(self, race_database, settings, accounts, monkeypatch):
        """The live-slot index rejects a duplicate the read check missed."""
        doctor_id, patient_ids = accounts
        monkeypatch.setattr(SchedulingService, "check_conflict", lambda self, *args, **kwargs: False)

        session = race_database.session()
        service = AppointmentService(session, settings)
        service.create_appointment(session.get(User, patient_ids[0]), self._request(doctor_id))

        with pytest.raises(ConflictError) as exc_info:
            service.create_appointment(session.get(User, patient_ids[1]), self._request(doctor_id))
        assert exc_info.value.code == "SLOT_TAKEN"

        assert session.query(Appointment).count() == 1
        session.close()
