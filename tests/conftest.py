"""Pytest configuration and fixtures."""

import numpy as np
import pytest
import tapegrad as tg


@pytest.fixture(autouse=True)
def clean_state():
    """Fresh config and no leaked active tapes around every test."""
    previous = tg.set_config(tg.Config())
    yield
    tg.set_config(previous)
    tg.Tape._active.clear()


@pytest.fixture
def random_seed():
    """Set random seed for reproducibility."""
    np.random.seed(42)


@pytest.fixture
def ab():
    """The two leaves of the mul/add scenario."""
    a = tg.tensor(np.array([1.0, 2.0, 3.0]))
    b = tg.tensor(np.array([4.0, 5.0, 6.0]))
    return a, b


@pytest.fixture
def tape():
    with tg.Tape() as t:
        yield t
