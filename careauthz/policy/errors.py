"""Error taxonomy for the authorization core.

Validation problems with a context are *values* (see ``validator``), never
exceptions. Exceptions are reserved for:

* configuration errors: the rule set or engine settings are unusable and an
  operator has to act;
* input errors: the request is missing subject/object/action fields and
  cannot be evaluated at all.
"""

from __future__ import annotations


class AuthzError(Exception):
    """Base class for all authorization-core errors."""


class ConfigurationError(AuthzError):
    """Engine configuration is missing or invalid."""


class RuleSetError(ConfigurationError):
    """Raised when a rule set cannot be loaded or parsed."""


class RuleSetNotLoadedError(ConfigurationError):
    """Raised when a decision is requested before any rule set was loaded."""

    def __init__(self, message: str = "no rule set loaded") -> None:
        super().__init__(message)


class InvalidRequestError(AuthzError, ValueError):
    """A required subject/object/action field is missing."""

    def __init__(self, field: str, message: str) -> None:
        super().__init__(f"{field}: {message}")
        self.field = field
        self.message = message
