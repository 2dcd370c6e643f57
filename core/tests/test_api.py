"""
Integration tests for the hospital backend API.

These tests exercise the front desk flows end to end: registration in
its three modes, the outpatient queue and its state transitions, and
vitals capture completing a pending registration.  They use Django REST
Framework's APIClient within the APITestCase base class.

To run the tests:

```
pytest -q core/tests
```
"""
from datetime import timedelta

from django.utils import timezone
from rest_framework import status
from rest_framework.test import APIClient, APITestCase

from ..models import Patient, QueueEntry, QueueTransition, User
from ..services import doctors as doctor_service


class HospitalAPITests(APITestCase):
    def setUp(self) -> None:
        """Create staff in every role, a doctor and two registered patients."""
        self.admin_user = User.objects.create_user(username="admin1", password="adminpass", role="admin")
        self.receptionist = User.objects.create_user(username="reception1", password="pass1234",
                                                     role="receptionist")
        self.nurse = User.objects.create_user(username="nurse1", password="pass1234", role="nurse")
        self.lab_user = User.objects.create_user(username="lab1", password="pass1234", role="lab")
        self.doctor, _ = doctor_service.create_doctor(None, {
            "username": "doctor1",
            "first_name": "Meera",
            "last_name": "Iyer",
            "specialization": "General Medicine",
        })
        self.patient1 = Patient.objects.create(uhid="AH25010001", first_name="Asha", last_name="Rao",
                                               gender="female", phone="9876543210", age=34)
        self.patient2 = Patient.objects.create(uhid="AH25010002", first_name="Vikram", last_name="Singh",
                                               gender="male", phone="9876500000", age=51)

    def authenticate(self, user: User) -> APIClient:
        """Return an authenticated APIClient for the given user."""
        client = APIClient()
        client.force_authenticate(user=user)
        return client

    # registration -----------------------------------------------------------

    def test_standard_registration_assigns_uhid_and_waits_for_vitals(self):
        client = self.authenticate(self.receptionist)
        response = client.post("/api/patients/register", {
            "firstName": "Kiran",
            "lastName": "Das",
            "gender": "male",
            "phone": "+91 98765-43210",
            "dateOfBirth": "1990-05-17",
        }, format="json")
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        uhid = response.data["uhid"]
        self.assertRegex(uhid, r"^AH\d{4}\d{4}$")
        self.assertTrue(uhid.startswith(f"AH{timezone.localtime():%y%m}"))
        patient = Patient.objects.get(uhid=uhid)
        self.assertEqual(patient.phone, "919876543210")
        self.assertEqual(patient.registration_status, "pending_vitals")
        self.assertIsNotNone(patient.age)
        self.assertIsNone(response.data["queueEntry"])

    def test_standard_registration_requires_phone_and_age(self):
        client = self.authenticate(self.receptionist)
        response = client.post("/api/patients/register", {"firstName": "Kiran", "gender": "male"}, format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(response.data["ok"])
        message = response.data["error"]["message"]
        self.assertIn("phone", message)
        self.assertIn("dateOfBirth", message)

    def test_emergency_registration_needs_only_complaint(self):
        client = self.authenticate(self.nurse)
        response = client.post("/api/patients/register", {
            "mode": "emergency",
            "gender": "other",
            "primaryComplaint": "Road traffic accident",
            "addToQueue": True,
        }, format="json")
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        patient = Patient.objects.get(uhid=response.data["uhid"])
        self.assertEqual(patient.first_name, "Unknown Patient")
        self.assertEqual(patient.admission_type, "emergency")
        self.assertEqual(patient.registration_status, "completed")
        self.assertEqual(response.data["queueEntry"]["queueNumber"], 1)

    def test_registration_can_book_first_appointment(self):
        client = self.authenticate(self.receptionist)
        today = timezone.localdate()
        monday = today + timedelta(days=7 - today.weekday())
        response = client.post("/api/patients/register", {
            "mode": "quick",
            "firstName": "Leela",
            "gender": "female",
            "phone": "9000000001",
            "appointment": {"doctorId": self.doctor.id, "date": monday.isoformat(), "time": "10:00"},
        }, format="json")
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        appointment = response.data["appointment"]
        self.assertEqual(appointment["patientUhid"], response.data["uhid"])
        self.assertEqual(appointment["sessionType"], "morning")
        self.assertEqual(appointment["tokenNumber"], 1)

    def test_lab_staff_cannot_register_patients(self):
        client = self.authenticate(self.lab_user)
        response = client.post("/api/patients/register", {"firstName": "X", "gender": "male",
                                                          "phone": "9000000002", "age": 20}, format="json")
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_patient_search_and_lookup(self):
        client = self.authenticate(self.lab_user)
        response = client.get("/api/patients", {"q": "vikram"})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([p["uhid"] for p in response.data["data"]], ["AH25010002"])
        self.assertEqual(response.data["pagination"]["total"], 1)
        detail = client.get("/api/patients/AH25010001")
        self.assertEqual(detail.data["data"]["name"], "Asha Rao")
        missing = client.get("/api/patients/AH00000000")
        self.assertEqual(missing.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(missing.data["error"]["message"], "patient not found")

    def test_check_uhid(self):
        client = self.authenticate(self.receptionist)
        self.assertFalse(client.get("/api/patients/check-uhid", {"uhid": "AH25010001"}).data["available"])
        self.assertTrue(client.get("/api/patients/check-uhid", {"uhid": "AH25019999"}).data["available"])
        self.assertEqual(client.get("/api/patients/check-uhid").status_code, status.HTTP_400_BAD_REQUEST)

    def test_only_admins_deactivate_patients(self):
        response = self.authenticate(self.receptionist).post("/api/patients/AH25010001/deactivate")
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        response = self.authenticate(self.admin_user).post("/api/patients/AH25010001/deactivate")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.patient1.refresh_from_db()
        self.assertEqual(self.patient1.status, "inactive")

    # queue ------------------------------------------------------------------

    def test_queue_numbers_are_sequential_and_unique_per_patient(self):
        client = self.authenticate(self.receptionist)
        first = client.post("/api/queue", {"uhid": self.patient1.uhid}, format="json")
        second = client.post("/api/queue", {"patientId": self.patient2.id}, format="json")
        again = client.post("/api/queue", {"uhid": self.patient1.uhid}, format="json")
        self.assertEqual(first.status_code, status.HTTP_201_CREATED)
        self.assertEqual(first.data["data"]["queueNumber"], 1)
        self.assertEqual(second.data["data"]["queueNumber"], 2)
        self.assertEqual(again.data["data"]["id"], first.data["data"]["id"])
        self.assertEqual(QueueEntry.objects.count(), 2)

    def test_call_next_respects_priority(self):
        client = self.authenticate(self.receptionist)
        client.post("/api/queue", {"uhid": self.patient1.uhid}, format="json")
        urgent = client.post("/api/queue", {"uhid": self.patient2.uhid, "priority": 5}, format="json")
        doctor_client = self.authenticate(self.doctor.user)
        response = doctor_client.post("/api/queue/call-next", {}, format="json")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["data"]["id"], urgent.data["data"]["id"])
        self.assertEqual(response.data["data"]["status"], "in_progress")
        self.assertEqual(response.data["data"]["doctorId"], self.doctor.id)

    def test_call_next_with_empty_queue_returns_null(self):
        response = self.authenticate(self.nurse).post("/api/queue/call-next", {}, format="json")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIsNone(response.data["data"])

    def test_queue_transitions_are_checked_and_recorded(self):
        client = self.authenticate(self.receptionist)
        entry_id = client.post("/api/queue", {"uhid": self.patient1.uhid}, format="json").data["data"]["id"]
        # waiting entries cannot jump straight to completed
        response = client.post(f"/api/queue/{entry_id}/status", {"status": "completed"}, format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["error"]["code"], "invalid_transition")
        self.assertEqual(response.data["error"]["message"], "cannot change status from waiting to completed")

        client.post(f"/api/queue/{entry_id}/status", {"status": "in_progress"}, format="json")
        response = client.post(f"/api/queue/{entry_id}/status", {"status": "completed"}, format="json")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        entry = QueueEntry.objects.get(id=entry_id)
        self.assertIsNotNone(entry.called_at)
        self.assertIsNotNone(entry.completed_at)
        transitions = list(QueueTransition.objects.filter(entry=entry).order_by("id")
                           .values_list("from_status", "to_status"))
        self.assertEqual(transitions, [(None, "waiting"), ("waiting", "in_progress"), ("in_progress", "completed")])

        history = client.get(f"/api/queue/{entry_id}").data["data"]["transitionHistory"]
        self.assertEqual(history[-1]["operator"], "reception1")

    def test_completing_queue_entry_completes_registration(self):
        self.patient1.registration_status = "pending_vitals"
        self.patient1.save()
        client = self.authenticate(self.nurse)
        entry_id = client.post("/api/queue", {"uhid": self.patient1.uhid}, format="json").data["data"]["id"]
        client.post(f"/api/queue/{entry_id}/status", {"status": "in_progress"}, format="json")
        client.post(f"/api/queue/{entry_id}/status", {"status": "completed"}, format="json")
        self.patient1.refresh_from_db()
        self.assertEqual(self.patient1.registration_status, "completed")

    def test_queue_listing_and_stats(self):
        client = self.authenticate(self.receptionist)
        client.post("/api/queue", {"uhid": self.patient1.uhid}, format="json")
        entry = client.post("/api/queue", {"uhid": self.patient2.uhid}, format="json").data["data"]
        client.post(f"/api/queue/{entry['id']}/status", {"status": "cancelled"}, format="json")
        waiting = client.get("/api/queue", {"status": "waiting"})
        self.assertEqual([e["uhid"] for e in waiting.data["data"]], [self.patient1.uhid])
        stats = client.get("/api/queue/stats").data["data"]
        self.assertEqual(stats["total"], 2)
        self.assertEqual(stats["waiting"], 1)
        self.assertEqual(stats["cancelled"], 1)

    def test_priority_and_removal_are_front_desk_only(self):
        client = self.authenticate(self.receptionist)
        entry_id = client.post("/api/queue", {"uhid": self.patient1.uhid}, format="json").data["data"]["id"]
        lab = self.authenticate(self.lab_user)
        self.assertEqual(lab.post(f"/api/queue/{entry_id}/priority", {"priority": 3}, format="json").status_code,
                         status.HTTP_403_FORBIDDEN)
        self.assertEqual(lab.delete(f"/api/queue/{entry_id}").status_code, status.HTTP_403_FORBIDDEN)
        response = client.post(f"/api/queue/{entry_id}/priority", {"priority": 3}, format="json")
        self.assertEqual(response.data["data"]["priority"], 3)
        self.assertEqual(client.delete(f"/api/queue/{entry_id}").status_code, status.HTTP_200_OK)
        self.assertFalse(QueueEntry.objects.filter(id=entry_id).exists())

    # vitals -----------------------------------------------------------------

    def test_vitals_complete_pending_registration(self):
        self.patient1.registration_status = "pending_vitals"
        self.patient1.save()
        client = self.authenticate(self.nurse)
        pending = client.get("/api/patients/pending-vitals")
        self.assertIn(self.patient1.uhid, [p["uhid"] for p in pending.data["data"]])

        response = client.post(f"/api/patients/{self.patient1.uhid}/vitals", {
            "bloodPressure": "120/80",
            "heartRate": 72,
            "temperature": "36.8",
            "weight": "70",
            "height": "175",
        }, format="json")
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data["registrationStatus"], "completed")
        self.assertEqual(response.data["data"]["bloodPressure"], "120/80")
        self.assertEqual(response.data["data"]["bmi"], 22.9)

        summary = client.get(f"/api/patients/{self.patient1.uhid}/vitals/summary").data["data"]
        self.assertEqual(summary["recordCount"], 1)
        self.assertEqual(summary["bmiCategory"], "normal")
        self.assertNotIn(self.patient1.uhid,
                         [p["uhid"] for p in client.get("/api/patients/pending-vitals").data["data"]])

    def test_vitals_out_of_range_are_rejected(self):
        client = self.authenticate(self.nurse)
        response = client.post(f"/api/patients/{self.patient1.uhid}/vitals",
                               {"heartRate": 400}, format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("heart_rate", response.data["error"]["message"])
        response = client.post(f"/api/patients/{self.patient1.uhid}/vitals",
                               {"bloodPressure": "80/120"}, format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        response = client.post(f"/api/patients/{self.patient1.uhid}/vitals", {"notes": "calm"}, format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_overview_collects_patient_activity(self):
        client = self.authenticate(self.receptionist)
        client.post("/api/queue", {"uhid": self.patient1.uhid}, format="json")
        response = client.get(f"/api/patients/{self.patient1.uhid}/overview")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        data = response.data["data"]
        self.assertEqual(data["patient"]["uhid"], self.patient1.uhid)
        self.assertEqual(data["queueEntry"]["queueNumber"], 1)
        self.assertIsNone(data["latestVitals"])
        self.assertEqual(data["appointments"], [])
