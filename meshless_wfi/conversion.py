"""
Enum <-> string tables for JSON output.

Pure lookups: each table is built on call from the enum members, so no
registry state lives at module level.
"""
from enum import Enum
from typing import Dict, Type

from .materials import Dependencies
from .options import PointType, TauScaling, Weighting


def _table(enum_type: Type[Enum]) -> Dict[Enum, str]:
    return {member: member.name.lower() for member in enum_type}


def to_string(value: Enum) -> str:
    """Convert an enum member to its output string."""
    return _table(type(value))[value]


def from_string(enum_type: Type[Enum], text: str) -> Enum:
    """Convert an output string back to the enum member."""
    inverse = {v: k for k, v in _table(enum_type).items()}
    try:
        return inverse[text.lower()]
    except KeyError:
        raise ValueError(
            f"'{text}' is not a valid {enum_type.__name__}; "
            f"choose from {sorted(inverse)}"
        ) from None


def point_type_to_string(point_type: PointType) -> str:
    return to_string(point_type)


def weighting_from_string(text: str) -> Weighting:
    return from_string(Weighting, text)


def tau_scaling_from_string(text: str) -> TauScaling:
    return from_string(TauScaling, text)


def dependencies_to_dict(dependencies: Dependencies) -> Dict[str, str]:
    return {
        'angular': to_string(dependencies.angular),
        'energy': to_string(dependencies.energy),
        'spatial': to_string(dependencies.spatial),
        'dimensional': to_string(dependencies.dimensional),
    }
