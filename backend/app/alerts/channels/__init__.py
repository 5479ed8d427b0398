"""
channels — Per-channel delivery backends.

Each channel module exposes an async
    send(contact, <message>, *, provider, timeout_seconds) → DeliveryAttempt

Channels never raise: provider errors, timeouts and missing credentials
all come back as FAILED attempts (see delivery.run_attempt).
"""
