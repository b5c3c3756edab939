"""BDD tests for the integration manager fan-out.

Step definitions are in conftest.py.
"""

import pytest
from pytest_bdd import scenarios

scenarios("manager.feature")

pytestmark = [
    pytest.mark.tier(2),
    pytest.mark.tra("Manager.FanOut"),
]
