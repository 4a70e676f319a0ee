"""Conversion of raw property strings into declared Python types."""

from propbind.coercion.converters import CoercionRules, Converter, coerce, is_optional
from propbind.coercion.expansion import expand_variables

__all__ = ["CoercionRules", "Converter", "coerce", "expand_variables", "is_optional"]
