"""Pytest fixtures for campaign intel tests."""

import pytest

from src.shared.intel.case_store import InMemoryCaseStore
from src.shared.intel.entity_store import InMemoryEntityStore
from tests.fixtures.intel import (
    bruteforce_pivot_cases,
    phishing_case,
    sample_entities,
)


@pytest.fixture
def pivot_cases():
    """Brute force then two pivots, chronological order."""
    return bruteforce_pivot_cases()


@pytest.fixture
def all_cases(pivot_cases):
    """Pivot cases plus an unrelated closed phishing case."""
    return pivot_cases + [phishing_case()]


@pytest.fixture
def entities():
    """Entity memory for the pivot cases."""
    return sample_entities()


@pytest.fixture
def case_store(all_cases):
    """In-memory case store seeded with all cases."""
    return InMemoryCaseStore(list(all_cases))


@pytest.fixture
def entity_store(entities):
    """In-memory entity store seeded with sample entities."""
    return InMemoryEntityStore(list(entities))

