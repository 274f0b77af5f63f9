"""Hook specifications added by pytest-sauce-reporter."""

import pytest


@pytest.hookspec(firstresult=True)
def pytest_sauce_driver(item: pytest.Item):
    """Return the browser driver the item runs against, or None.

    The driver's ``session_id`` identifies the Sauce Labs job to update.
    Implement this in a conftest when the driver is not available as a
    ``driver``, ``selenium``, ``webdriver`` or ``browser`` fixture.

    A module reports to one job: the session of the last test that ran
    against a driver. Give the driver fixture module (or wider) scope so
    all tests of a module share that session; with a function scoped
    driver the jobs of earlier tests in the module are left unreported.
    """
