"""
Booking Slot Lock Service

Short-lived, TTL-bounded mutual exclusion over (tenant, resource, date,
startTime) booking slots while a customer completes checkout.
"""

__version__ = "1.0.0"
