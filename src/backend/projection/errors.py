"""
Error types raised by the projection engine.
"""

from typing import Optional


class ProjectionError(Exception):
    """Base class for projection failures."""


class ConfigurationError(ProjectionError, ValueError):
    """Malformed input detected before the first period is projected."""

    def __init__(self, message: str, entity_id: Optional[str] = None):
        self.entity_id = entity_id
        if entity_id is not None:
            message = f"{entity_id}: {message}"
        super().__init__(message)


class ProjectionArithmeticError(ProjectionError, ArithmeticError):
    """Math that cannot be evaluated for one entity. The entity is isolated, the run continues."""

    def __init__(self, message: str, entity_id: Optional[str] = None):
        self.entity_id = entity_id
        if entity_id is not None:
            message = f"{entity_id}: {message}"
        super().__init__(message)


class InvariantViolation(ProjectionError, RuntimeError):
    """Engine bug detected at the allocator boundary. Always fatal."""

    def __init__(self, message: str, period_index: Optional[int] = None, rule_id: Optional[str] = None):
        self.period_index = period_index
        self.rule_id = rule_id
        where = []
        if period_index is not None:
            where.append(f"period {period_index}")
        if rule_id is not None:
            where.append(f"rule {rule_id}")
        if where:
            message = f"{message} ({', '.join(where)})"
        super().__init__(message)
