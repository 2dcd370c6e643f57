"""
URL mappings for the hospital backend API.

Routes have no trailing slashes (``APPEND_SLASH = False``).
Resources are addressed by their public identifiers where they have
one: patients by UHID, appointments by appointment id, bills by bill
number.  Diagnostic orders accept either the numeric id or the order
number.
"""
from django.urls import include, path

from .auth_views import jwt_logout_view, jwt_refresh_view, login_view, me_view
from .views import appointments, attachments, billing, dashboard, departments, diagnostics, doctors, health
from .views import patients, queues, revisits

urlpatterns = [
    path('', include('django_prometheus.urls')),
    path('healthz', health.healthz),

    # auth
    path('api/auth/login', login_view, name='login_view'),
    path('api/auth/refresh', jwt_refresh_view, name='jwt_refresh_view'),
    path('api/auth/logout', jwt_logout_view, name='jwt_logout_view'),
    path('api/auth/me', me_view),

    path('api/dashboard', dashboard.dashboard),

    # patients
    path('api/patients', patients.list_patients),
    path('api/patients/register', patients.register_patient),
    path('api/patients/check-uhid', patients.check_uhid),
    path('api/patients/pending-vitals', patients.pending_vitals),
    path('api/patients/<str:uhid>', patients.patient_detail),
    path('api/patients/<str:uhid>/deactivate', patients.deactivate_patient),
    path('api/patients/<str:uhid>/overview', patients.patient_overview),
    path('api/patients/<str:uhid>/vitals', patients.patient_vitals),
    path('api/patients/<str:uhid>/vitals/summary', patients.vitals_summary),
    path('api/patients/<str:uhid>/appointments', appointments.patient_appointments),
    path('api/patients/<str:uhid>/orders', diagnostics.patient_orders),
    path('api/patients/<str:uhid>/revisits', revisits.patient_revisits),
    path('api/patients/<str:uhid>/visit-history', revisits.visit_history),

    # return visits
    path('api/revisits', revisits.revisits),
    path('api/revisits/stats', revisits.revisit_stats),
    path('api/revisits/<int:revisit_id>', revisits.revisit_detail),

    # appointments
    path('api/appointments', appointments.appointments),
    path('api/appointments/validate', appointments.validate_appointment),
    path('api/appointments/slots', appointments.available_slots),
    path('api/appointments/schedule', appointments.doctor_schedule),
    path('api/appointments/upcoming', appointments.upcoming_appointments),
    path('api/appointments/stats', appointments.appointment_stats),
    path('api/appointments/<str:appointment_id>', appointments.appointment_detail),
    path('api/appointments/<str:appointment_id>/status', appointments.appointment_status),
    path('api/appointments/<str:appointment_id>/medical', appointments.appointment_medical_info),
    path('api/appointments/<str:appointment_id>/reschedule', appointments.reschedule_appointment),
    path('api/appointments/<str:appointment_id>/cancel', appointments.cancel_appointment),

    # doctors & departments
    path('api/departments', departments.departments),
    path('api/doctors', doctors.doctors),
    path('api/doctors/available', doctors.available_doctors),
    path('api/doctors/specializations', doctors.specializations),
    path('api/doctors/stats', doctors.doctor_stats),
    path('api/doctors/shifts/<int:shift_id>', doctors.delete_shift),
    path('api/doctors/<int:doctor_id>', doctors.doctor_detail),
    path('api/doctors/<int:doctor_id>/availability', doctors.doctor_availability),
    path('api/doctors/<int:doctor_id>/slots', doctors.doctor_slots),
    path('api/doctors/<int:doctor_id>/slot-check', doctors.slot_check),
    path('api/doctors/<int:doctor_id>/shifts', doctors.doctor_shifts),

    # outpatient queue
    path('api/queue', queues.queue_entries),
    path('api/queue/call-next', queues.call_next),
    path('api/queue/stats', queues.queue_stats),
    path('api/queue/<int:entry_id>', queues.queue_entry_detail),
    path('api/queue/<int:entry_id>/status', queues.queue_entry_status),
    path('api/queue/<int:entry_id>/priority', queues.queue_entry_priority),

    # diagnostics
    path('api/diagnostics/tests', diagnostics.catalog),
    path('api/diagnostics/tests/categories', diagnostics.catalog_categories),
    path('api/diagnostics/tests/<int:test_id>', diagnostics.catalog_detail),
    path('api/diagnostics/orders', diagnostics.orders),
    path('api/diagnostics/orders/<str:order_id>', diagnostics.order_detail),
    path('api/diagnostics/orders/<str:order_id>/status', diagnostics.order_status),
    path('api/diagnostics/orders/<str:order_id>/results', diagnostics.order_results),
    path('api/diagnostics/results/<int:result_id>', diagnostics.result_detail),
    path('api/diagnostics/groups', diagnostics.groups),
    path('api/diagnostics/groups/<int:group_id>', diagnostics.group_detail),
    path('api/diagnostics/groups/<int:group_id>/items', diagnostics.group_items),
    path('api/diagnostics/group-items/<int:item_id>', diagnostics.group_item_detail),
    path('api/diagnostics/group-orders', diagnostics.group_orders),
    path('api/diagnostics/group-orders/<int:group_order_id>', diagnostics.group_order_detail),
    path('api/diagnostics/stats', diagnostics.diagnostic_stats),

    # attachments
    path('api/attachments', attachments.list_attachments),
    path('api/attachments/upload', attachments.upload_attachment),
    path('api/attachments/<int:attachment_id>', attachments.attachment_detail),

    # billing
    path('api/billing/items', billing.billing_items),
    path('api/billing/items/<int:item_id>/status', billing.billing_item_status),
    path('api/billing/bills', billing.bills),
    path('api/billing/bills/<str:bill_number>', billing.bill_detail),
    path('api/billing/bills/<str:bill_number>/pay', billing.bill_payment),
    path('api/billing/stats', billing.billing_stats),
]
