"""Connection settings for the Sauce Labs REST API."""

import os
from dataclasses import dataclass
from typing import Any, Mapping

import httpx
import pytest

DEFAULT_HOST = "saucelabs.com"


def _split_tags(value: str | None) -> tuple[str, ...]:
    """Split a comma separated tag list, dropping blanks."""
    if not value:
        return ()
    return tuple(tag.strip() for tag in value.split(",") if tag.strip())


def _truthy(value: Any) -> bool:
    """Interpret an ini or environment flag."""
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class SauceConfig:
    """Credentials and job defaults, resolved once before any test runs."""

    user: str
    access_key: str
    build_id: str | None = None
    host: str = DEFAULT_HOST
    scheme: str = "https"
    tags: tuple[str, ...] = ()
    timeout: float | None = None
    track_steps: bool = False

    def jobs_url(self, session_id: str) -> str:
        return f"{self.scheme}://{self.host}/rest/v1/{self.user}/jobs/{session_id}"

    @classmethod
    def from_environ(cls, environ: Mapping[str, str] | None = None) -> "SauceConfig | None":
        """Build a config from SAUCE_* variables, or None without credentials."""
        env = os.environ if environ is None else environ
        user = env.get("SAUCE_USERNAME")
        access_key = env.get("SAUCE_ACCESS_KEY")
        if not user or not access_key:
            return None
        return cls(
            user=user,
            access_key=access_key,
            build_id=env.get("BUILD_ID") or env.get("SAUCE_BUILD_ID") or None,
            host=env.get("SAUCE_HOST") or DEFAULT_HOST,
            tags=_split_tags(env.get("SAUCE_TAGS")),
        )

    @classmethod
    def from_pytest_config(
        cls,
        config: pytest.Config,
        environ: Mapping[str, str] | None = None,
    ) -> "SauceConfig | None":
        """
        Resolve settings from command line, then ini file, then environment.

        Returns None when no credentials are configured at all, which leaves
        the plugin inert. A user without an access key (or the reverse) is
        a usage error.
        """
        env = os.environ if environ is None else environ

        def lookup(option: str, ini: str, *env_names: str) -> Any:
            value = config.getoption(option, default=None)
            if value in (None, ""):
                value = config.getini(ini) or None
            for name in env_names:
                if value not in (None, ""):
                    break
                value = env.get(name) or None
            return value

        user = lookup("sauce_user", "sauce_user", "SAUCE_USERNAME")
        access_key = lookup("sauce_access_key", "sauce_access_key", "SAUCE_ACCESS_KEY")
        if not user and not access_key:
            return None
        if not user or not access_key:
            raise pytest.UsageError(
                "Sauce Labs reporting needs both a user and an access key "
                "(--sauce-user/SAUCE_USERNAME and --sauce-access-key/SAUCE_ACCESS_KEY)"
            )

        timeout = lookup("sauce_timeout", "sauce_timeout")
        try:
            timeout = float(timeout) if timeout is not None else None
        except ValueError:
            raise pytest.UsageError(f"Invalid Sauce Labs timeout: {timeout!r}") from None

        track_steps = config.getoption("sauce_track_steps", default=False) or _truthy(
            config.getini("sauce_track_steps")
        )

        host = lookup("sauce_host", "sauce_host", "SAUCE_HOST") or DEFAULT_HOST
        if "//" in host:
            raise pytest.UsageError(f"Sauce Labs host must not include a scheme: {host!r}")
        try:
            httpx.URL(f"https://{host}/")
        except httpx.InvalidURL as e:
            raise pytest.UsageError(f"Invalid Sauce Labs host {host!r}: {e}") from None

        return cls(
            user=user,
            access_key=access_key,
            build_id=lookup("sauce_build", "sauce_build", "BUILD_ID", "SAUCE_BUILD_ID"),
            host=host,
            tags=_split_tags(lookup("sauce_tags", "sauce_tags", "SAUCE_TAGS")),
            timeout=timeout,
            track_steps=track_steps,
        )
