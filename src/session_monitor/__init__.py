"""Session Monitor service.

Reconciles tenant messaging gateway sessions and alerts tenants about
prolonged outages.
"""
