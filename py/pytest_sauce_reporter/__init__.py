"""
pytest-sauce-reporter: report test module outcomes to Sauce Labs jobs.

Install, provide credentials and it just works - each module updates the
job of the browser session its tests ran in.
"""

from .config import SauceConfig
from .reporter import JobStatus, SauceJobReporter, StoryContext

__version__ = "0.1.0"
__all__ = ["JobStatus", "SauceConfig", "SauceJobReporter", "StoryContext"]
