"""Shared fixtures: a recorded fake of the Sauce Labs jobs API."""

import httpx
import pytest

from pytest_sauce_reporter import SauceConfig, SauceJobReporter

# Load the plugin from source even when the package entry point is installed.
PLUGIN_ARGS = ("-p", "no:sauce_reporter", "-p", "pytest_sauce_reporter.plugin")

JOB_RESPONSE = """{
  "id": "%(session)s",
  "passed": true,
  "video_url": "http://x.com/jobs/%(session)s/video.flv",
  "log_url": "http://x.com/jobs/%(session)s/selenium-server.log"
}"""


class FakeSauceAPI:
    """Records job updates and answers like the jobs endpoint."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.status_code = 200
        self.error: Exception | None = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        session = request.url.path.rsplit("/", 1)[-1]
        return httpx.Response(self.status_code, text=JOB_RESPONSE % {"session": session})

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def sauce_api() -> FakeSauceAPI:
    return FakeSauceAPI()


@pytest.fixture
def sauce_config() -> SauceConfig:
    return SauceConfig(user="alice", access_key="secret")


@pytest.fixture
def make_reporter(sauce_api):
    reporters = []

    def factory(config: SauceConfig, **kwargs) -> SauceJobReporter:
        client = httpx.Client(transport=sauce_api.transport)
        reporter = SauceJobReporter(config, http_client=client, **kwargs)
        reporters.append((reporter, client))
        return reporter

    yield factory
    for reporter, client in reporters:
        reporter.close()
        client.close()


@pytest.fixture
def patched_http_client(monkeypatch, sauce_api):
    """Route clients the plugin creates itself to the fake API."""
    real_client = httpx.Client
    monkeypatch.setattr(httpx, "Client", lambda **kw: real_client(transport=sauce_api.transport, **kw))
    for name in ("SAUCE_USERNAME", "SAUCE_ACCESS_KEY", "BUILD_ID", "SAUCE_BUILD_ID", "SAUCE_HOST", "SAUCE_TAGS"):
        monkeypatch.delenv(name, raising=False)
    return sauce_api


@pytest.fixture
def run_sauce(pytester, patched_http_client):
    """Run pytest in-process with the plugin and the fake API."""
    def run(*args):
        return pytester.runpytest(*PLUGIN_ARGS, *args)
    return run
