"""Campaign intel test fixtures package."""

from .sample_cases import (
    create_case,
    create_entity,
    bruteforce_pivot_cases,
    phishing_case,
    sample_entities,
)

__all__ = [
    "create_case",
    "create_entity",
    "bruteforce_pivot_cases",
    "phishing_case",
    "sample_entities",
]
