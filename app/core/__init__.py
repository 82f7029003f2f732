"""
Core application: base classes shared by the domain apps.

Services (import from core.services):
    - BaseService: Base class for the service layer
    - ServiceResult: Success/failure wrapper for expected failures

Exceptions (import from core.exceptions):
    - BaseApplicationError, ValidationError, NotFoundError,
      PermissionDeniedError, ExternalServiceError

Models (import directly from core.models / core.model_mixins):
    - BaseModel: created_at / updated_at
    - SoftDeleteMixin: is_deleted / deleted_at

Note:
    Models and mixins are not re-exported here because importing them
    before the app registry is ready raises AppRegistryNotReady.
"""

from .exceptions import (
    BaseApplicationError,
    ExternalServiceError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from .services import BaseService, ServiceResult

__all__ = [
    "BaseService",
    "ServiceResult",
    "BaseApplicationError",
    "ValidationError",
    "NotFoundError",
    "PermissionDeniedError",
    "ExternalServiceError",
]
