"""
Django admin registrations for the core models.

Hooks every model into Django's built-in admin so superusers can
inspect and correct data via the ``/admin/`` URL.  Only light
configuration is applied: list displays, filters and search fields.
"""

from django.contrib import admin

from .models import (
    Appointment,
    AuditEvent,
    BillingItem,
    Department,
    DiagnosticBill,
    DiagnosticGroup,
    DiagnosticGroupItem,
    DiagnosticOrder,
    DiagnosticTest,
    Doctor,
    DoctorShift,
    GroupOrder,
    LabAttachment,
    LabResult,
    Patient,
    PatientRevisit,
    QueueEntry,
    QueueTransition,
    User,
    VitalRecord,
)


@admin.register(Department)
class DepartmentAdmin(admin.ModelAdmin):
    list_display = ('id', 'name', 'code', 'is_active', 'created_at')
    list_filter = ('is_active',)
    search_fields = ('name', 'code')


@admin.register(User)
class UserAdmin(admin.ModelAdmin):
    list_display = ('username', 'role', 'department', 'is_staff', 'is_superuser')
    list_filter = ('role', 'department')
    search_fields = ('username', 'first_name', 'last_name')


@admin.register(Doctor)
class DoctorAdmin(admin.ModelAdmin):
    list_display = ('doctor_code', 'user', 'specialization', 'department', 'status')
    list_filter = ('status', 'department', 'emergency_available')
    search_fields = ('doctor_code', 'user__username', 'user__first_name', 'specialization')


@admin.register(DoctorShift)
class DoctorShiftAdmin(admin.ModelAdmin):
    list_display = ('doctor', 'department', 'start_at', 'end_at')
    list_filter = ('department',)


@admin.register(Patient)
class PatientAdmin(admin.ModelAdmin):
    list_display = ('uhid', 'first_name', 'last_name', 'gender', 'phone', 'registration_status', 'status')
    list_filter = ('status', 'registration_status', 'registration_mode', 'admission_type')
    search_fields = ('uhid', 'first_name', 'last_name', 'phone')
    readonly_fields = ('uhid', 'created_at', 'updated_at')


@admin.register(Appointment)
class AppointmentAdmin(admin.ModelAdmin):
    list_display = ('appointment_id', 'patient', 'doctor', 'appointment_date', 'appointment_time', 'status')
    list_filter = ('status', 'appointment_type', 'is_emergency', 'appointment_date')
    search_fields = ('appointment_id', 'patient__uhid', 'patient__first_name')


class QueueTransitionInline(admin.TabularInline):
    model = QueueTransition
    extra = 0
    readonly_fields = ('from_status', 'to_status', 'operator', 'timestamp', 'reason')


@admin.register(QueueEntry)
class QueueEntryAdmin(admin.ModelAdmin):
    list_display = ('queue_date', 'queue_number', 'patient', 'status', 'priority', 'doctor')
    list_filter = ('status', 'queue_date')
    search_fields = ('patient__uhid', 'patient__first_name')
    inlines = [QueueTransitionInline]


@admin.register(VitalRecord)
class VitalRecordAdmin(admin.ModelAdmin):
    list_display = ('patient', 'bp_systolic', 'bp_diastolic', 'heart_rate', 'temperature', 'recorded_at')
    search_fields = ('patient__uhid',)


@admin.register(PatientRevisit)
class PatientRevisitAdmin(admin.ModelAdmin):
    list_display = ('patient', 'visit_date', 'visit_time', 'visit_type', 'doctor', 'payment_status')
    list_filter = ('visit_type', 'payment_status')
    search_fields = ('patient__uhid', 'reason_for_visit')


@admin.register(DiagnosticTest)
class DiagnosticTestAdmin(admin.ModelAdmin):
    list_display = ('code', 'name', 'service_type', 'category', 'cost', 'is_active')
    list_filter = ('service_type', 'is_active', 'category')
    search_fields = ('code', 'name')


class DiagnosticGroupItemInline(admin.TabularInline):
    model = DiagnosticGroupItem
    extra = 0


@admin.register(DiagnosticGroup)
class DiagnosticGroupAdmin(admin.ModelAdmin):
    list_display = ('name', 'category', 'is_active', 'updated_at')
    list_filter = ('is_active',)
    search_fields = ('name',)
    inlines = [DiagnosticGroupItemInline]


@admin.register(GroupOrder)
class GroupOrderAdmin(admin.ModelAdmin):
    list_display = ('id', 'patient', 'group_name_snapshot', 'urgency', 'created_at')
    search_fields = ('patient__uhid', 'group_name_snapshot')


class LabResultInline(admin.TabularInline):
    model = LabResult
    extra = 0


@admin.register(DiagnosticOrder)
class DiagnosticOrderAdmin(admin.ModelAdmin):
    list_display = ('order_number', 'service_type', 'patient', 'test', 'urgency', 'status', 'created_at')
    list_filter = ('service_type', 'status', 'urgency')
    search_fields = ('order_number', 'patient__uhid', 'test__name')
    inlines = [LabResultInline]


@admin.register(DiagnosticBill)
class DiagnosticBillAdmin(admin.ModelAdmin):
    list_display = ('bill_number', 'patient', 'total', 'paid_amount', 'payment_status', 'issued_at')
    list_filter = ('payment_status', 'bill_type')
    search_fields = ('bill_number', 'patient__uhid')


@admin.register(BillingItem)
class BillingItemAdmin(admin.ModelAdmin):
    list_display = ('order', 'patient', 'order_type', 'test_name', 'amount', 'status')
    list_filter = ('status', 'order_type')
    search_fields = ('test_name', 'patient__uhid', 'order__order_number')


@admin.register(LabAttachment)
class LabAttachmentAdmin(admin.ModelAdmin):
    list_display = ('id', 'patient', 'test_type', 'test_name', 'file_name', 'uploaded_at')
    list_filter = ('test_type',)
    search_fields = ('patient__uhid', 'file_name', 'test_name')


@admin.register(AuditEvent)
class AuditEventAdmin(admin.ModelAdmin):
    list_display = ('created_at', 'user', 'action', 'object_type', 'object_id')
    list_filter = ('action', 'object_type')
    search_fields = ('object_id', 'user__username')
    readonly_fields = ('created_at',)
