"""Story lifecycle tracking and job status updates for Sauce Labs."""

import json
import logging
import re
import sys
import traceback
from dataclasses import dataclass, field
from typing import Any, Iterable

import httpx

from .config import SauceConfig

logger = logging.getLogger(__name__)

# Synthetic stories emitted around the real ones; they never map to a job.
BOOKKEEPING_STORIES = frozenset({
    "BeforeStories",
    "AfterStories",
    "BeforeStory",
    "AfterStory",
    "BeforeScenario",
    "AfterScenario",
})

# The job response carries e.g.
#   "video_url": "https://saucelabs.com/jobs/3bd32831ec0d91c4/video.flv",
VIDEO_URL_PATTERN = re.compile(r"http.*\.flv")
VIDEO_SUFFIX = "/video.flv"


@dataclass
class StoryContext:
    """State of one running story. Owned by whoever drives the lifecycle."""

    story_name: str
    session_id: str | None = None
    passed: bool = True
    scenario: str | None = None
    job_name: str | None = None
    tags: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class JobStatus:
    """Body of the job update request."""

    name: str
    passed: bool
    tags: list[str] = field(default_factory=list)
    build: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"tags": list(self.tags)}
        if self.build is not None:
            payload["build"] = self.build
        payload["passed"] = "true" if self.passed else "false"
        # Job names carry a leading space, matching existing jobs.
        payload["name"] = f" {self.name}"
        return payload

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), separators=(",", ":"))


class SauceJobReporter:
    """Reports the outcome of each story to the Sauce Labs job it ran in."""

    def __init__(
        self,
        config: SauceConfig,
        http_client: httpx.Client | None = None,
        output=None,
        error_output=None,
    ):
        self.config = config
        self.output = output
        self.error_output = error_output
        self._http_client = http_client
        self._owns_client = http_client is None

    @property
    def http_client(self) -> httpx.Client:
        if self._http_client is None:
            kwargs: dict[str, Any] = {}
            if self.config.timeout is not None:
                kwargs["timeout"] = self.config.timeout
            self._http_client = httpx.Client(**kwargs)
        return self._http_client

    def close(self):
        if self._owns_client and self._http_client is not None:
            self._http_client.close()
            self._http_client = None

    # Lifecycle

    def before_story(
        self,
        name: str,
        *,
        job_name: str | None = None,
        tags: Iterable[str] = (),
    ) -> StoryContext:
        """Called when a story begins; returns its fresh context."""
        if isinstance(tags, str):
            tags = (tags,)
        logger.debug("Story started: %s", name)
        return StoryContext(story_name=name, job_name=job_name, tags=list(tags))

    def before_scenario(self, context: StoryContext, driver: Any, title: str = ""):
        """Called when a scenario begins; captures the driver's session id."""
        context.scenario = title or None
        session_id = getattr(driver, "session_id", None) if driver is not None else None
        if session_id:
            context.session_id = str(session_id)
            logger.debug("Scenario %r runs in session %s", title, context.session_id)

    def failed(self, context: StoryContext, step: str | None = None, error: Any = None):
        """Called when a step fails; the story will report as failing."""
        context.passed = False
        logger.debug("Step failed in %s: %s (%s)", context.story_name, step, error)

    def after_story(self, context: StoryContext) -> bool:
        """Called when a story ends. Returns True if a job update was sent."""
        if context.story_name in BOOKKEEPING_STORIES:
            return False
        if context.session_id is None:
            # No scenario ran against a browser, most likely all were excluded.
            logger.debug("No session for story %s, skipping job update", context.story_name)
            return False
        self.update_job(context)
        return True

    # Job update

    def job_name(self, context: StoryContext) -> str:
        """Name of the job. Defaults to the story name."""
        return context.job_name or context.story_name

    def job_tags(self, context: StoryContext) -> list[str]:
        """Tags to apply to the job: configured tags, then the story's own."""
        tags: list[str] = []
        for tag in (*self.config.tags, *context.tags):
            if tag not in tags:
                tags.append(tag)
        return tags

    def job_status(self, context: StoryContext) -> JobStatus:
        return JobStatus(
            name=self.job_name(context),
            passed=context.passed,
            tags=self.job_tags(context),
            build=self.config.build_id,
        )

    def update_job(self, context: StoryContext):
        """Send the story outcome to its job. Failures are logged, never raised."""
        url = self.config.jobs_url(context.session_id)
        status = self.job_status(context)
        try:
            response = self.http_client.put(
                url,
                content=status.to_json(),
                headers={"Content-Type": "application/json"},
                auth=(self.config.user, self.config.access_key),
            )
            if response.status_code != 200:
                logger.debug("Job update for %s returned %s", context.story_name, response.status_code)
                return
            for line in response.iter_lines():
                self.process_response_line(context, line)
        except (httpx.HTTPError, httpx.InvalidURL, OSError) as e:
            logger.exception("Error updating Sauce Labs job info: %s", e)
            stream = self.error_output or sys.stderr
            print(f"Error updating Sauce Labs job info: {e}", file=stream)
            traceback.print_exc(file=stream)

    def process_response_line(self, context: StoryContext, line: str) -> list[str]:
        """Print the job URL for every video link found in a response line."""
        urls = []
        outcome = "passing" if context.passed else "failing"
        for match in VIDEO_URL_PATTERN.finditer(line):
            url = match.group().replace(VIDEO_SUFFIX, "")
            urls.append(url)
            print(
                f"Sauce Labs job URL for {outcome} '{context.story_name}' : {url}",
                file=self.output or sys.stdout,
            )
        return urls
