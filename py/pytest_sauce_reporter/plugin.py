"""
Pytest plugin reporting each test module to Sauce Labs as a story.

This plugin:
1. Treats every test module as a story and every test in it as a scenario
2. Captures the browser session id of the driver each test runs against
3. Marks the story failed when any test phase fails
4. Updates the Sauce Labs job with the outcome once the module finishes
"""

import logging
from pathlib import Path

import pytest

from . import hooks
from .config import SauceConfig
from .instrumentation import patch_playwright, set_step_failure_listener
from .reporter import SauceJobReporter, StoryContext

logger = logging.getLogger(__name__)

PLUGIN_NAME = "sauce-story-reporter"
DRIVER_FIXTURE_NAMES = ("driver", "selenium", "webdriver", "browser")


def _story_path(item: pytest.Item) -> str:
    """Path part of the node id; one story per test file."""
    return item.nodeid.split("::", 1)[0]


class SauceStoryPlugin:
    """Drives a SauceJobReporter from the pytest run protocol."""

    def __init__(self, config: pytest.Config, reporter: SauceJobReporter):
        self.config = config
        self.reporter = reporter
        self.context: StoryContext | None = None
        self._story_path: str | None = None

    def start_story(self, item: pytest.Item):
        """Open the story for the module ``item`` belongs to."""
        path = _story_path(item)
        module = item.getparent(pytest.Module)
        marker = module.get_closest_marker("sauce_job") if module is not None else None
        job_name = marker.kwargs.get("name") if marker else None
        tags = marker.kwargs.get("tags", ()) if marker else ()
        self._story_path = path
        self.context = self.reporter.before_story(Path(path).stem, job_name=job_name, tags=tags)

    def end_story(self):
        """Close the active story and update its job with capture disabled."""
        context, self.context, self._story_path = self.context, None, None
        if context is None:
            return
        capman = self.config.pluginmanager.getplugin("capturemanager")
        if capman is not None:
            with capman.global_and_fixture_disabled():
                self.reporter.after_story(context)
        else:
            self.reporter.after_story(context)

    def step_failed(self, step: str, error: BaseException | None = None):
        """Mark the active story as failing."""
        if self.context is not None:
            self.reporter.failed(self.context, step, error)

    @pytest.hookimpl(hookwrapper=True)
    def pytest_runtest_protocol(self, item: pytest.Item, nextitem: pytest.Item | None):
        """Start a story on the first item of a module and end it after the last."""
        if self.context is None or self._story_path != _story_path(item):
            self.end_story()
            self.start_story(item)
        yield
        if nextitem is None or _story_path(nextitem) != self._story_path:
            self.end_story()

    def pytest_collection_modifyitems(self, items: list[pytest.Item]):
        """Warn about sauce_job markers set on single tests."""
        for item in items:
            if any(mark.name == "sauce_job" for mark in item.own_markers):
                item.warn(pytest.PytestWarning(
                    "sauce_job applies to a whole module; set it with pytestmark instead"
                ))

    @pytest.hookimpl(tryfirst=True)
    def pytest_runtest_call(self, item: pytest.Item):
        """Capture the session of the driver the test is about to use."""
        if self.context is None:
            return
        driver = item.config.hook.pytest_sauce_driver(item=item)
        self.reporter.before_scenario(self.context, driver, item.name)

    def pytest_runtest_logreport(self, report: pytest.TestReport):
        """Any failed setup, call or teardown fails the story."""
        if report.failed:
            self.step_failed(f"{report.nodeid} ({report.when})", None)

    @pytest.hookimpl(trylast=True)
    def pytest_sauce_driver(self, item: pytest.Item):
        """Default driver lookup among the usual fixture names."""
        funcargs = getattr(item, "funcargs", {})
        for name in DRIVER_FIXTURE_NAMES:
            driver = funcargs.get(name)
            if driver is not None and getattr(driver, "session_id", None):
                return driver
        return None

    def pytest_sessionfinish(self, session: pytest.Session):
        """Flush a story left open by an interrupted run."""
        self.end_story()


def pytest_addhooks(pluginmanager: pytest.PytestPluginManager):
    """Register the pytest_sauce_driver hook."""
    pluginmanager.add_hookspecs(hooks)


def pytest_addoption(parser: pytest.Parser):
    """Add the Sauce Labs command line options and ini keys."""
    group = parser.getgroup("sauce", "Sauce Labs job reporting")
    group.addoption("--sauce-user", dest="sauce_user", default=None,
                    help="Sauce Labs user name (env: SAUCE_USERNAME).")
    group.addoption("--sauce-access-key", dest="sauce_access_key", default=None,
                    help="Sauce Labs access key (env: SAUCE_ACCESS_KEY).")
    group.addoption("--sauce-build", dest="sauce_build", default=None,
                    help="Build identifier attached to every job (env: BUILD_ID).")
    group.addoption("--sauce-host", dest="sauce_host", default=None,
                    help="Sauce Labs API host, e.g. api.eu-central-1.saucelabs.com (env: SAUCE_HOST).")
    group.addoption("--sauce-tags", dest="sauce_tags", default=None,
                    help="Comma separated tags attached to every job (env: SAUCE_TAGS).")
    group.addoption("--sauce-timeout", dest="sauce_timeout", default=None,
                    help="Timeout in seconds for job updates.")
    group.addoption("--sauce-track-steps", dest="sauce_track_steps", action="store_true", default=False,
                    help="Fail the story when any Playwright action fails, even if the test recovers.")

    parser.addini("sauce_user", "Sauce Labs user name.")
    parser.addini("sauce_access_key", "Sauce Labs access key.")
    parser.addini("sauce_build", "Build identifier attached to every job.")
    parser.addini("sauce_host", "Sauce Labs API host.")
    parser.addini("sauce_tags", "Comma separated tags attached to every job.")
    parser.addini("sauce_timeout", "Timeout in seconds for job updates.")
    parser.addini("sauce_track_steps", "Track Playwright action failures.", type="bool", default=False)


def pytest_configure(config: pytest.Config):
    """Called after command line options have been parsed."""
    config.addinivalue_line(
        "markers",
        "sauce_job(name=None, tags=()): override the Sauce Labs job name and add tags for a module.",
    )
    if config.pluginmanager.has_plugin(PLUGIN_NAME):
        return

    sauce_config = SauceConfig.from_pytest_config(config)
    if sauce_config is None:
        logger.debug("No Sauce Labs credentials configured, job reporting disabled")
        return

    plugin = SauceStoryPlugin(config, SauceJobReporter(sauce_config))
    config.pluginmanager.register(plugin, PLUGIN_NAME)

    if sauce_config.track_steps:
        # Patch Playwright classes before any tests run
        patch_playwright()
        set_step_failure_listener(plugin.step_failed)


def pytest_unconfigure(config: pytest.Config):
    """Stop reporting and close the HTTP client."""
    plugin = config.pluginmanager.get_plugin(PLUGIN_NAME)
    if plugin is None:
        return
    set_step_failure_listener(None)
    plugin.reporter.close()
    config.pluginmanager.unregister(plugin, PLUGIN_NAME)
