"""
alerts — Emergency alert fan-out to a caller's contacts.

Sub-modules:
    channels/       — Per-channel delivery (SMS, WhatsApp, email) + providers
    dispatcher      — Core orchestration: validate, load contacts, fan out, tally
    contacts_store  — Read-only contacts backends (memory, Supabase)
    templates       — Text and HTML alert rendering
    models          — Data structures shared across the system
"""
