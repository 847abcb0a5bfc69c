"""
Core Application - Infrastructure & Base Classes

Generic building blocks shared by the domain apps. Nothing in here knows
about settlement rules.

Models (core.models):
    - BaseModel: Abstract model with created_at / updated_at

Model Mixins (core.model_mixins):
    - UUIDPrimaryKeyMixin: UUID primary key
    - VersionedMixin: Optimistic-lock version counter

Services (core.services):
    - BaseService: Logger and transaction helpers for service classes
    - ServiceResult: Success/failure wrapper for expected outcomes

Exceptions (core.exceptions):
    - BaseApplicationError and the ValidationError / NotFoundError /
      PermissionDeniedError / ConflictError family

Views (core.views):
    - health_check: Database and cache check
"""
