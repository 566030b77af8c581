"""Care Board Service - pet-care task lifecycle and role-scoped reputation."""

__version__ = "0.1.0"
