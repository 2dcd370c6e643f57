"""Core application of the outpatient backend.

Models, services, serializers, views and routes for registration,
appointments, the outpatient queue, vitals, diagnostics and billing.
"""
