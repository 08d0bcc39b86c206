import pytest

from solholdings.logging_utils import reset_throttle
from solholdings.registry import reset_registry


@pytest.fixture(autouse=True)
def _isolate_shared_state():
    reset_registry()
    reset_throttle()
    yield
    reset_registry()
