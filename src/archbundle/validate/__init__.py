"""Bundle validation package."""

from archbundle.validate.validator import validate, validate_bundle

__all__ = [
    "validate",
    "validate_bundle",
]
