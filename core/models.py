"""
Database models for the hospital administration backend.

These models capture the core concepts of the system: staff users and
departments, patients identified by a UHID, doctors and their session
rosters, appointments, the daily outpatient queue, vitals, and the
laboratory / radiology / scan ordering workflow together with its
billing and file attachments.  Field names mirror the JSON exposed by
the API (snake_case here, camelCase on the wire).
"""
from __future__ import annotations

import datetime
import os
import uuid

from django.contrib.auth.models import AbstractUser
from django.db import models
from django.utils import timezone


class Department(models.Model):
    """A hospital department (cardiology, orthopaedics, radiology, ...)."""
    name = models.CharField(max_length=255, unique=True)
    code = models.CharField(max_length=20, blank=True)
    description = models.TextField(blank=True)
    # departments are filtered by this flag on most listings
    is_active = models.BooleanField(default=True, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self) -> str:
        return self.name


class User(AbstractUser):
    """Staff account with a role.

    Roles gate the API: reception registers patients and books
    appointments, nurses run the outpatient queue and vitals, lab staff
    process diagnostic orders, doctors see their own schedule, and
    admin/super manage everything.
    """
    ROLE_CHOICES = [
        ('admin', 'Administrator'),
        ('receptionist', 'Receptionist'),
        ('doctor', 'Doctor'),
        ('nurse', 'Nurse'),
        ('lab', 'Lab / Radiology'),
        ('super', 'Super Administrator'),
    ]
    role = models.CharField(max_length=16, choices=ROLE_CHOICES, default='receptionist')
    phone = models.CharField(max_length=20, blank=True)
    department = models.ForeignKey(
        Department, null=True, blank=True, on_delete=models.SET_NULL, related_name='staff', db_index=True
    )

    def __str__(self) -> str:
        return f"{self.username} ({self.role})"


class Doctor(models.Model):
    """Doctor roster entry linked to a staff account.

    ``sessions`` maps a session name (morning/afternoon/evening) to a
    ``{"startTime", "endTime", "maxPatients"}`` dict and
    ``available_sessions`` lists the sessions currently offered.
    ``working_days`` uses 0 = Sunday .. 6 = Saturday.
    """
    STATUS_CHOICES = [
        ('active', 'Active'),
        ('inactive', 'Inactive'),
    ]
    user = models.OneToOneField(User, on_delete=models.CASCADE, related_name='doctor_profile')
    doctor_code = models.CharField(max_length=20, unique=True)
    license_number = models.CharField(max_length=64, blank=True)
    specialization = models.CharField(max_length=128, db_index=True)
    qualification = models.CharField(max_length=255, blank=True)
    department = models.ForeignKey(
        Department, null=True, blank=True, on_delete=models.SET_NULL, related_name='doctors'
    )
    years_of_experience = models.PositiveIntegerField(default=0)
    consultation_fee = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    room_number = models.CharField(max_length=20, blank=True)
    floor_number = models.IntegerField(null=True, blank=True)
    sessions = models.JSONField(default=dict, blank=True)
    available_sessions = models.JSONField(default=list, blank=True)
    working_days = models.JSONField(default=list, blank=True)
    emergency_available = models.BooleanField(default=False)
    max_patients_per_day = models.PositiveIntegerField(default=30)
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default='active', db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    @property
    def name(self) -> str:
        return self.user.get_full_name() or self.user.username

    def __str__(self) -> str:
        return f"{self.name} ({self.doctor_code})"


class DoctorShift(models.Model):
    """On-duty interval for a doctor, used by the on-duty doctor filter."""
    doctor = models.ForeignKey(Doctor, on_delete=models.CASCADE, related_name='shifts')
    department = models.ForeignKey(
        Department, null=True, blank=True, on_delete=models.SET_NULL, related_name='doctor_shifts'
    )
    start_at = models.DateTimeField()
    end_at = models.DateTimeField()
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [
            models.Index(fields=['doctor', 'start_at', 'end_at']),
        ]

    def __str__(self):
        return f"Shift(d={self.doctor_id}, {self.start_at:%F %T}~{self.end_at:%F %T})"


class Patient(models.Model):
    """A registered patient identified by an immutable UHID."""
    GENDER_CHOICES = [
        ('male', 'Male'),
        ('female', 'Female'),
        ('other', 'Other'),
    ]
    ADMISSION_CHOICES = [
        ('outpatient', 'Outpatient'),
        ('inpatient', 'Inpatient'),
        ('emergency', 'Emergency'),
    ]
    MODE_CHOICES = [
        ('standard', 'Standard'),
        ('quick', 'Quick'),
        ('emergency', 'Emergency'),
    ]
    REGISTRATION_STATUS_CHOICES = [
        ('pending_vitals', 'Pending vitals'),
        ('completed', 'Completed'),
    ]
    STATUS_CHOICES = [
        ('active', 'Active'),
        ('inactive', 'Inactive'),
    ]

    uhid = models.CharField(max_length=20, unique=True)
    first_name = models.CharField(max_length=128)
    last_name = models.CharField(max_length=128, blank=True)
    gender = models.CharField(max_length=10, choices=GENDER_CHOICES)
    date_of_birth = models.DateField(null=True, blank=True)
    age = models.PositiveSmallIntegerField(null=True, blank=True)
    marital_status = models.CharField(max_length=20, blank=True)
    phone = models.CharField(max_length=20, blank=True, db_index=True)
    email = models.EmailField(blank=True)
    address = models.TextField(blank=True)
    city = models.CharField(max_length=64, blank=True)
    state = models.CharField(max_length=64, blank=True)
    pincode = models.CharField(max_length=12, blank=True)

    blood_group = models.CharField(max_length=5, blank=True)
    allergies = models.TextField(blank=True)
    medical_history = models.TextField(blank=True)
    current_medications = models.TextField(blank=True)

    admission_type = models.CharField(max_length=16, choices=ADMISSION_CHOICES, default='outpatient')
    primary_complaint = models.TextField(blank=True)
    consulting_doctor = models.ForeignKey(
        Doctor, null=True, blank=True, on_delete=models.SET_NULL, related_name='consulting_patients'
    )
    department = models.ForeignKey(
        Department, null=True, blank=True, on_delete=models.SET_NULL, related_name='patients'
    )

    guardian_name = models.CharField(max_length=128, blank=True)
    guardian_relationship = models.CharField(max_length=64, blank=True)
    guardian_phone = models.CharField(max_length=20, blank=True)
    emergency_contact_name = models.CharField(max_length=128, blank=True)
    emergency_contact_phone = models.CharField(max_length=20, blank=True)
    emergency_contact_relationship = models.CharField(max_length=64, blank=True)
    insurance_provider = models.CharField(max_length=128, blank=True)
    insurance_number = models.CharField(max_length=64, blank=True)

    registration_mode = models.CharField(max_length=16, choices=MODE_CHOICES, default='standard')
    # outpatients wait in 'pending_vitals' until a nurse records their vitals
    registration_status = models.CharField(
        max_length=20, choices=REGISTRATION_STATUS_CHOICES, default='completed', db_index=True
    )
    vitals_completed_at = models.DateTimeField(null=True, blank=True)
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default='active', db_index=True)
    created_by = models.ForeignKey(
        User, null=True, blank=True, on_delete=models.SET_NULL, related_name='registered_patients'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def __str__(self) -> str:
        return f"{self.full_name} ({self.uhid})"


class Appointment(models.Model):
    TYPE_CHOICES = [
        ('new_patient', 'New patient'),
        ('follow_up', 'Follow up'),
        ('emergency', 'Emergency'),
        ('routine_checkup', 'Routine checkup'),
        ('consultation', 'Consultation'),
    ]
    STATUS_CHOICES = [
        ('scheduled', 'Scheduled'),
        ('confirmed', 'Confirmed'),
        ('in_progress', 'In progress'),
        ('completed', 'Completed'),
        ('cancelled', 'Cancelled'),
        ('rescheduled', 'Rescheduled'),
    ]
    SESSION_CHOICES = [
        ('morning', 'Morning'),
        ('afternoon', 'Afternoon'),
        ('evening', 'Evening'),
        ('emergency', 'Emergency'),
    ]

    appointment_id = models.CharField(max_length=20, unique=True)
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='appointments')
    doctor = models.ForeignKey(Doctor, on_delete=models.CASCADE, related_name='appointments')
    appointment_date = models.DateField()
    appointment_time = models.TimeField()
    duration_minutes = models.PositiveIntegerField(default=30)
    appointment_type = models.CharField(max_length=20, choices=TYPE_CHOICES, default='consultation')
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default='scheduled', db_index=True)
    token_number = models.PositiveIntegerField(null=True, blank=True)
    is_emergency = models.BooleanField(default=False)
    session_type = models.CharField(max_length=16, choices=SESSION_CHOICES, blank=True)

    symptoms = models.TextField(blank=True)
    chief_complaint = models.TextField(blank=True)
    diagnosis = models.TextField(blank=True)
    treatment_plan = models.TextField(blank=True)
    prescriptions = models.JSONField(default=list, blank=True)
    follow_up_required = models.BooleanField(default=False)
    follow_up_date = models.DateField(null=True, blank=True)
    next_appointment_date = models.DateField(null=True, blank=True)
    notes = models.TextField(blank=True)
    cancel_reason = models.CharField(max_length=255, blank=True)

    created_by = models.ForeignKey(
        User, null=True, blank=True, on_delete=models.SET_NULL, related_name='booked_appointments'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=['doctor', 'appointment_date']),
            models.Index(fields=['patient', 'appointment_date']),
        ]

    @property
    def starts_at(self) -> datetime.datetime:
        return datetime.datetime.combine(self.appointment_date, self.appointment_time)

    def __str__(self) -> str:
        return f"{self.appointment_id} {self.appointment_date} {self.appointment_time:%H:%M}"


class QueueEntry(models.Model):
    """A patient's place in the outpatient queue for one day."""
    STATUS_CHOICES = [
        ('waiting', 'Waiting'),
        ('in_progress', 'In progress'),
        ('completed', 'Completed'),
        ('cancelled', 'Cancelled'),
    ]
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='queue_entries')
    queue_date = models.DateField(db_index=True)
    queue_number = models.PositiveIntegerField()
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default='waiting', db_index=True)
    # higher value is served first
    priority = models.IntegerField(default=0)
    notes = models.TextField(blank=True)
    doctor = models.ForeignKey(
        Doctor, null=True, blank=True, on_delete=models.SET_NULL, related_name='queue_entries'
    )
    staff = models.ForeignKey(
        User, null=True, blank=True, on_delete=models.SET_NULL, related_name='queue_entries'
    )
    called_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=['patient', 'queue_date'], name='uniq_queue_patient_per_day'),
            models.UniqueConstraint(fields=['queue_date', 'queue_number'], name='uniq_queue_number_per_day'),
        ]

    def __str__(self) -> str:
        return f"#{self.queue_number} {self.queue_date} ({self.status})"


class QueueTransition(models.Model):
    """Records a status transition for a queue entry."""
    entry = models.ForeignKey(QueueEntry, related_name='transitions', on_delete=models.CASCADE)
    from_status = models.CharField(max_length=16, null=True, blank=True)
    to_status = models.CharField(max_length=16)
    operator = models.ForeignKey(
        User, null=True, blank=True, on_delete=models.SET_NULL, related_name='queue_transitions'
    )
    timestamp = models.DateTimeField(auto_now_add=True)
    reason = models.CharField(max_length=255, blank=True)

    def __str__(self) -> str:
        return f"{self.entry_id}: {self.from_status} -> {self.to_status}"


class VitalRecord(models.Model):
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='vitals')
    queue_entry = models.ForeignKey(
        QueueEntry, null=True, blank=True, on_delete=models.SET_NULL, related_name='vitals'
    )
    bp_systolic = models.PositiveSmallIntegerField(null=True, blank=True)
    bp_diastolic = models.PositiveSmallIntegerField(null=True, blank=True)
    heart_rate = models.PositiveSmallIntegerField(null=True, blank=True)
    temperature = models.DecimalField(max_digits=4, decimal_places=1, null=True, blank=True)
    respiratory_rate = models.PositiveSmallIntegerField(null=True, blank=True)
    oxygen_saturation = models.PositiveSmallIntegerField(null=True, blank=True)
    weight = models.DecimalField(max_digits=5, decimal_places=2, null=True, blank=True)
    height = models.DecimalField(max_digits=5, decimal_places=1, null=True, blank=True)
    pain_scale = models.PositiveSmallIntegerField(null=True, blank=True)
    blood_glucose = models.DecimalField(max_digits=5, decimal_places=1, null=True, blank=True)
    notes = models.TextField(blank=True)
    recorded_by = models.ForeignKey(
        User, null=True, blank=True, on_delete=models.SET_NULL, related_name='recorded_vitals'
    )
    recorded_at = models.DateTimeField(default=timezone.now, db_index=True)

    def __str__(self) -> str:
        return f"Vitals({self.patient_id}) @ {self.recorded_at:%F %T}"


class PatientRevisit(models.Model):
    """A return outpatient visit by an already registered patient."""
    VISIT_TYPE_CHOICES = [
        ('follow-up', 'Follow-up'),
        ('new-complaint', 'New complaint'),
        ('routine-checkup', 'Routine checkup'),
        ('review', 'Report review'),
    ]
    PAYMENT_STATUS_CHOICES = [
        ('pending', 'Pending'),
        ('paid', 'Paid'),
        ('waived', 'Waived'),
    ]
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='revisits')
    visit_date = models.DateField(default=timezone.localdate, db_index=True)
    visit_time = models.TimeField()
    department = models.ForeignKey(
        Department, null=True, blank=True, on_delete=models.SET_NULL, related_name='revisits'
    )
    doctor = models.ForeignKey(Doctor, null=True, blank=True, on_delete=models.SET_NULL, related_name='revisits')
    appointment = models.OneToOneField(
        Appointment, null=True, blank=True, on_delete=models.SET_NULL, related_name='revisit'
    )
    reason_for_visit = models.TextField()
    symptoms = models.TextField(blank=True)
    previous_diagnosis = models.TextField(blank=True)
    current_diagnosis = models.TextField(blank=True)
    consultation_fee = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    payment_mode = models.CharField(max_length=32, blank=True)
    payment_status = models.CharField(max_length=16, choices=PAYMENT_STATUS_CHOICES, default='pending')
    visit_type = models.CharField(max_length=20, choices=VISIT_TYPE_CHOICES, default='follow-up')
    notes = models.TextField(blank=True)
    staff = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL, related_name='revisits')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-visit_date', '-visit_time']

    def __str__(self) -> str:
        return f"Revisit({self.patient_id}) {self.visit_date} {self.visit_type}"


# ---------------------------------------------------------------------------
# Diagnostics: catalog, orders, results, groups, billing, attachments
# ---------------------------------------------------------------------------

SERVICE_TYPE_CHOICES = [
    ('lab', 'Laboratory'),
    ('radiology', 'Radiology'),
    ('scan', 'Scan'),
    ('xray', 'X-Ray'),
]

URGENCY_CHOICES = [
    ('routine', 'Routine'),
    ('urgent', 'Urgent'),
    ('stat', 'STAT'),
    ('emergency', 'Emergency'),
]


class DiagnosticTest(models.Model):
    """Catalog entry for an orderable lab test, imaging study or scan."""
    service_type = models.CharField(max_length=16, choices=SERVICE_TYPE_CHOICES, db_index=True)
    code = models.CharField(max_length=32)
    name = models.CharField(max_length=255)
    category = models.CharField(max_length=128, blank=True)
    sample_type = models.CharField(max_length=64, blank=True)
    modality = models.CharField(max_length=64, blank=True)
    body_part = models.CharField(max_length=64, blank=True)
    fasting_required = models.BooleanField(default=False)
    contrast_required = models.BooleanField(default=False)
    turnaround_hours = models.PositiveIntegerField(null=True, blank=True)
    cost = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    is_active = models.BooleanField(default=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=['service_type', 'code'], name='uniq_test_code_per_type'),
        ]

    def __str__(self) -> str:
        return f"[{self.service_type}] {self.name}"


class DiagnosticGroup(models.Model):
    """A reusable bundle of catalog tests (e.g. "Fever panel")."""
    name = models.CharField(max_length=255)
    category = models.CharField(max_length=128, blank=True)
    service_types = models.JSONField(default=list, blank=True)
    is_active = models.BooleanField(default=True)
    created_by = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return self.name


class DiagnosticGroupItem(models.Model):
    group = models.ForeignKey(DiagnosticGroup, on_delete=models.CASCADE, related_name='items')
    test = models.ForeignKey(DiagnosticTest, on_delete=models.CASCADE, related_name='group_items')
    default_selected = models.BooleanField(default=True)
    sort_order = models.PositiveIntegerField(default=0)

    class Meta:
        ordering = ['sort_order', 'id']

    def __str__(self) -> str:
        return f"{self.group_id}:{self.test_id}"


class GroupOrder(models.Model):
    """Several diagnostic orders placed together for one patient."""
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='group_orders')
    group = models.ForeignKey(
        DiagnosticGroup, null=True, blank=True, on_delete=models.SET_NULL, related_name='orders'
    )
    group_name_snapshot = models.CharField(max_length=255, blank=True)
    appointment = models.ForeignKey(
        Appointment, null=True, blank=True, on_delete=models.SET_NULL, related_name='group_orders'
    )
    ordering_doctor = models.ForeignKey(
        Doctor, null=True, blank=True, on_delete=models.SET_NULL, related_name='group_orders'
    )
    clinical_indication = models.TextField(blank=True)
    urgency = models.CharField(max_length=16, choices=URGENCY_CHOICES, default='routine')
    created_by = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return f"GroupOrder({self.id}) p={self.patient_id}"


class DiagnosticOrder(models.Model):
    STATUS_CHOICES = [
        ('ordered', 'Ordered'),
        ('sample_collected', 'Sample collected'),
        ('in_progress', 'In progress'),
        ('completed', 'Completed'),
        ('cancelled', 'Cancelled'),
    ]
    order_number = models.CharField(max_length=32, unique=True)
    service_type = models.CharField(max_length=16, choices=SERVICE_TYPE_CHOICES, db_index=True)
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='diagnostic_orders')
    appointment = models.ForeignKey(
        Appointment, null=True, blank=True, on_delete=models.SET_NULL, related_name='diagnostic_orders'
    )
    ordering_doctor = models.ForeignKey(
        Doctor, null=True, blank=True, on_delete=models.SET_NULL, related_name='diagnostic_orders'
    )
    test = models.ForeignKey(DiagnosticTest, on_delete=models.PROTECT, related_name='orders')
    group_order = models.ForeignKey(
        GroupOrder, null=True, blank=True, on_delete=models.CASCADE, related_name='orders'
    )
    item_name_snapshot = models.CharField(max_length=255, blank=True)
    sort_order = models.PositiveIntegerField(default=0)

    clinical_indication = models.TextField(blank=True)
    provisional_diagnosis = models.TextField(blank=True)
    special_instructions = models.TextField(blank=True)
    body_part = models.CharField(max_length=64, blank=True)
    urgency = models.CharField(max_length=16, choices=URGENCY_CHOICES, default='routine')
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='ordered', db_index=True)
    preferred_date = models.DateField(null=True, blank=True)
    preferred_time = models.TimeField(null=True, blank=True)
    amount = models.DecimalField(max_digits=10, decimal_places=2, default=0)

    sample_id = models.CharField(max_length=64, blank=True)
    sample_collected_at = models.DateTimeField(null=True, blank=True)
    sample_collected_by = models.CharField(max_length=128, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)

    created_by = models.ForeignKey(
        User, null=True, blank=True, on_delete=models.SET_NULL, related_name='diagnostic_orders'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=['service_type', 'status', 'created_at']),
        ]

    def __str__(self) -> str:
        return f"{self.order_number} ({self.status})"


class LabResult(models.Model):
    order = models.ForeignKey(DiagnosticOrder, on_delete=models.CASCADE, related_name='results')
    parameter_name = models.CharField(max_length=128)
    value = models.CharField(max_length=128)
    unit = models.CharField(max_length=32, blank=True)
    reference_range = models.CharField(max_length=64, blank=True)
    is_abnormal = models.BooleanField(default=False)
    notes = models.TextField(blank=True)
    entered_by = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return f"{self.parameter_name}={self.value}{self.unit}"


class DiagnosticBill(models.Model):
    """An issued bill covering one or more diagnostic billing items."""
    PAYMENT_STATUS_CHOICES = [
        ('pending', 'Pending'),
        ('partial', 'Partially paid'),
        ('paid', 'Paid'),
    ]
    bill_number = models.CharField(max_length=32, unique=True)
    bill_type = models.CharField(max_length=32, default='diagnostic')
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='bills')
    subtotal = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    discount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    tax = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    total = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    paid_amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    payment_status = models.CharField(max_length=16, choices=PAYMENT_STATUS_CHOICES, default='pending', db_index=True)
    payment_method = models.CharField(max_length=32, blank=True)
    payment_reference = models.CharField(max_length=64, blank=True)
    issued_at = models.DateTimeField(default=timezone.now)
    paid_at = models.DateTimeField(null=True, blank=True)
    created_by = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL)

    def __str__(self) -> str:
        return f"{self.bill_number} ({self.payment_status})"


class BillingItem(models.Model):
    """Charge line created automatically for every diagnostic order."""
    STATUS_CHOICES = [
        ('pending', 'Pending'),
        ('billed', 'Billed'),
        ('paid', 'Paid'),
        ('void', 'Void'),
    ]
    order = models.OneToOneField(DiagnosticOrder, on_delete=models.CASCADE, related_name='billing_item')
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='billing_items')
    order_type = models.CharField(max_length=16, choices=SERVICE_TYPE_CHOICES)
    test_name = models.CharField(max_length=255)
    amount = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    paid_amount = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default='pending', db_index=True)
    bill = models.ForeignKey(
        DiagnosticBill, null=True, blank=True, on_delete=models.SET_NULL, related_name='items'
    )
    billed_at = models.DateTimeField(null=True, blank=True)
    paid_at = models.DateTimeField(null=True, blank=True)
    payment_method = models.CharField(max_length=32, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self) -> str:
        return f"{self.test_name} {self.amount} ({self.status})"


def _attachment_upload(instance, filename: str) -> str:
    ext = os.path.splitext(filename)[1].lstrip('.').lower() or 'bin'
    stamp = int(timezone.now().timestamp() * 1000)
    return f"{instance.test_type}-tests/{instance.patient.uhid}/{stamp}-{uuid.uuid4().hex[:8]}.{ext}"


class LabAttachment(models.Model):
    """A report or image file uploaded against a diagnostic order."""
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='attachments')
    order = models.ForeignKey(
        DiagnosticOrder, null=True, blank=True, on_delete=models.CASCADE, related_name='attachments'
    )
    group_order = models.ForeignKey(
        GroupOrder, null=True, blank=True, on_delete=models.CASCADE, related_name='attachments'
    )
    test_name = models.CharField(max_length=255, blank=True)
    test_type = models.CharField(max_length=16, choices=SERVICE_TYPE_CHOICES)
    file = models.FileField(upload_to=_attachment_upload, max_length=512)
    file_name = models.CharField(max_length=255)
    content_type = models.CharField(max_length=128, blank=True)
    size = models.PositiveIntegerField(default=0)
    uploaded_by = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL)
    uploaded_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"att {self.id} {self.file_name}"


class AuditEvent(models.Model):
    user = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True)
    action = models.CharField(max_length=64)
    object_type = models.CharField(max_length=64, blank=True, null=True)
    object_id = models.CharField(max_length=64, blank=True, null=True)
    detail = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [
            models.Index(fields=['action', 'created_at']),
            models.Index(fields=['object_type', 'object_id', 'created_at']),
        ]

    def __str__(self):
        return f"{self.action}:{self.user_id}@{self.created_at:%F %T}"
