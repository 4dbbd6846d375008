"""Helpers package."""
from roster_import.helpers.registry_helpers import get_administered_tenant, get_existing_unit_numbers

__all__ = ["get_administered_tenant", "get_existing_unit_numbers"]
