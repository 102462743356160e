"""
Central constants for the CRM admin API.
"""
from __future__ import annotations

ROLE_USER = "user"
ROLE_ADMIN = "admin"
ROLE_SUPPORT = "support"
ROLES = frozenset({ROLE_USER, ROLE_ADMIN, ROLE_SUPPORT})

CUSTOMER_TYPES = ("residential", "business", "government", "education")
CUSTOMER_STATUSES = ("active", "suspended", "terminated")
COMMUNICATION_PREFERENCES = ("sms", "email", "whatsapp", "phone")
PREFERRED_LANGUAGES = ("english", "afrikaans", "zulu", "xhosa")
TITLES = ("Mr", "Mrs", "Miss", "Dr", "Prof")

PROVINCES = (
    "Western Cape",
    "Eastern Cape",
    "Northern Cape",
    "Free State",
    "KwaZulu-Natal",
    "Gauteng",
    "Mpumalanga",
    "Limpopo",
    "North West",
)

DEFAULT_NATIONALITY = "South African"

MIN_PASSWORD_LENGTH = 6
