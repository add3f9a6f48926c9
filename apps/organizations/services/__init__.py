"""
apps.organizations.services package.
"""
from .org_service import (  # noqa: F401
    create_organization,
    create_repository,
    get_organization,
    get_repository,
)
