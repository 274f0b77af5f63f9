"""
Step failure tracking for Playwright actions.

Patches Playwright Page, Locator and expect assertions so that an action
which raises is reported as a failed step, even when the test itself
catches the error.
"""

import functools
from typing import Any, Callable

StepFailureListener = Callable[[str, BaseException], None]

# Track if we've already patched to avoid double-patching
_patched = False
_listener: StepFailureListener | None = None


def set_step_failure_listener(listener: StepFailureListener | None):
    """Route failed steps to ``listener``; None stops reporting."""
    global _listener
    _listener = listener


def _notify(title: str, error: BaseException):
    if _listener is not None:
        _listener(title, error)


def wrap_async_method(method: Callable, title_fn: Callable[..., str]):
    """Wrap an async method to report failures."""
    @functools.wraps(method)
    async def wrapper(*args, **kwargs):
        try:
            return await method(*args, **kwargs)
        except Exception as e:
            _notify(title_fn(*args, **kwargs), e)
            raise

    wrapper._sauce_step_wrapped = True
    return wrapper


def wrap_sync_method(method: Callable, title_fn: Callable[..., str]):
    """Wrap a sync method to report failures."""
    @functools.wraps(method)
    def wrapper(*args, **kwargs):
        try:
            return method(*args, **kwargs)
        except Exception as e:
            _notify(title_fn(*args, **kwargs), e)
            raise

    wrapper._sauce_step_wrapped = True
    return wrapper


def is_wrapped(method: Callable) -> bool:
    return getattr(method, "_sauce_step_wrapped", False)


def _title(prefix: Any, name: str) -> Callable[..., str]:
    def title_fn(self, *args, **kwargs) -> str:
        shown = ", ".join(repr(a) if isinstance(a, str) else str(a) for a in args[:2])
        return f"{prefix(self) if callable(prefix) else prefix}.{name}({shown})"
    return title_fn


def _patch(cls: Any, names: list[str], prefix: Any, is_async: bool):
    wrap = wrap_async_method if is_async else wrap_sync_method
    for name in names:
        if hasattr(cls, name):
            original = getattr(cls, name)
            if not is_wrapped(original):
                setattr(cls, name, wrap(original, _title(prefix, name)))


PAGE_METHODS = [
    "goto", "reload", "go_back", "go_forward",
    "click", "dblclick", "fill", "type", "press", "check", "uncheck",
    "select_option", "hover", "focus", "drag_and_drop", "set_input_files",
    "wait_for_selector", "wait_for_load_state", "wait_for_url", "wait_for_function",
]

LOCATOR_METHODS = [
    "click", "dblclick", "fill", "type", "press", "check", "uncheck",
    "select_option", "hover", "focus", "scroll_into_view_if_needed",
    "set_input_files", "select_text", "clear", "wait_for",
]

ASSERTION_METHODS = [
    "to_be_visible", "to_be_hidden", "to_be_enabled", "to_be_disabled",
    "to_be_checked", "to_be_focused", "to_be_editable", "to_be_empty",
    "to_be_attached", "to_be_in_viewport", "to_have_text", "to_contain_text",
    "to_have_value", "to_have_values", "to_have_attribute", "to_have_class",
    "to_have_count", "to_have_css", "to_have_id", "to_have_role",
    "to_have_accessible_name", "to_have_accessible_description",
]


def patch_page_class(PageClass, is_async: bool = True):
    _patch(PageClass, PAGE_METHODS, "page", is_async)


def patch_locator_class(LocatorClass, is_async: bool = True):
    _patch(LocatorClass, LOCATOR_METHODS, lambda locator: f"locator({locator})", is_async)


def patch_assertions_class(AssertionsClass, is_async: bool = True):
    def describe(assertions) -> str:
        # The locator is nested inside _impl_obj for sync/async wrappers
        impl = getattr(assertions, "_impl_obj", assertions)
        for attr in ("_actual_locator", "_locator", "actual"):
            loc = getattr(impl, attr, None)
            if loc is not None:
                return f"expect({loc})"
        return "expect(locator)"

    _patch(AssertionsClass, ASSERTION_METHODS, describe, is_async)


def patch_playwright():
    """Patch all Playwright classes with failure tracking."""
    global _patched
    if _patched:
        return

    from playwright.async_api._generated import Locator as AsyncLocator
    from playwright.async_api._generated import LocatorAssertions as AsyncLocatorAssertions
    from playwright.async_api._generated import Page as AsyncPage
    from playwright.sync_api._generated import Locator as SyncLocator
    from playwright.sync_api._generated import LocatorAssertions as SyncLocatorAssertions
    from playwright.sync_api._generated import Page as SyncPage

    patch_page_class(AsyncPage, is_async=True)
    patch_locator_class(AsyncLocator, is_async=True)
    patch_assertions_class(AsyncLocatorAssertions, is_async=True)
    patch_page_class(SyncPage, is_async=False)
    patch_locator_class(SyncLocator, is_async=False)
    patch_assertions_class(SyncLocatorAssertions, is_async=False)

    _patched = True
