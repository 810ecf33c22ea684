"""
H10CM - Access Control Core

Role-based, multi-tenant access control for the H10CM production and
inventory application.
"""

__version__ = "1.0.0"
