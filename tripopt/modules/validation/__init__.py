"""
modules/validation package — input guards before any provider call.
"""
from tripopt.modules.validation.input_validator import (
    ValidationResult,
    coordinate_problem,
    validate_trip_input,
)

__all__ = [
    "ValidationResult",
    "coordinate_problem",
    "validate_trip_input",
]
