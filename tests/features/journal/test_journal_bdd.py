"""BDD tests for logging and metric suites.

Scenarios are loaded from the feature files in this directory; step
definitions are in conftest.py.
"""

import pytest
from pytest_bdd import scenarios

scenarios("logging.feature")
scenarios("metrics.feature")

pytestmark = [pytest.mark.tier(2)]
