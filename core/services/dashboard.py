from datetime import date
from decimal import Decimal
from typing import Optional

from django.db.models import F, Sum
from django.utils import timezone

from core.models import Appointment, BillingItem, DiagnosticOrder, Patient
from core.services.diagnostics import PENDING_STATUSES
from core.services.queue import queue_stats


def dashboard_summary(today: Optional[date] = None) -> dict:
    """Front desk numbers for one day."""
    today = today or timezone.localdate()
    appointments = Appointment.objects.filter(appointment_date=today)
    unpaid = (
        BillingItem.objects.filter(status__in=['pending', 'billed'])
        .aggregate(s=Sum(F('amount') - F('paid_amount')))['s'] or Decimal('0')
    )
    queue = queue_stats(today)
    return {
        'date': today.isoformat(),
        'registrationsToday': Patient.objects.filter(created_at__date=today).count(),
        'pendingVitals': Patient.objects.filter(registration_status='pending_vitals', status='active').count(),
        'appointmentsToday': appointments.count(),
        'appointmentsCompleted': appointments.filter(status='completed').count(),
        'appointmentsCancelled': appointments.filter(status='cancelled').count(),
        'queueWaiting': queue['waiting'],
        'queueInProgress': queue['inProgress'],
        'averageWaitMinutes': queue['averageWaitMinutes'],
        'pendingDiagnostics': DiagnosticOrder.objects.filter(status__in=PENDING_STATUSES).count(),
        'unpaidBillingTotal': str(unpaid),
    }
