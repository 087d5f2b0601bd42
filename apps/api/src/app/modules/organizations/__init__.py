"""
Organizations module - tenants and their configured fee types.
"""

from app.modules.organizations.models import FeeType, Organization
from app.modules.organizations.repository import FeeTypeRepository, OrganizationRepository

__all__ = ["Organization", "FeeType", "OrganizationRepository", "FeeTypeRepository"]
