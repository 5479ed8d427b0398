"""
access — Role-based access control.

Sub-modules:
    roles  — Role enum, RoleRegistry (grant + audit log)
"""
