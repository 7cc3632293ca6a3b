import threading

import pytest
from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError

from market_intel.core.errors import RenderError, RenderErrorReason
from market_intel.providers.render import (
    MANAGED_ARGS,
    LocalBrowserStrategy,
    ManagedBrowserStrategy,
    RemoteBrowserStrategy,
    RenderAgent,
    select_launch_strategy,
)


class FakePage:
    def __init__(self, goto_error=None, ready_error=None, shot_error=None):
        self.goto_error = goto_error
        self.ready_error = ready_error
        self.shot_error = shot_error
        self.visited = []

    def goto(self, url, wait_until=None, timeout=None):
        self.visited.append(url)
        if self.goto_error:
            raise self.goto_error

    def wait_for_selector(self, selector, state=None, timeout=None):
        if self.ready_error:
            raise self.ready_error

    def wait_for_timeout(self, ms):
        pass

    def screenshot(self, type=None, timeout=None):
        if self.shot_error:
            raise self.shot_error
        return b"\x89PNG-bytes"


class FakeBrowser:
    def __init__(self, page):
        self.page = page
        self.closed = False
        self.viewport = None

    def new_page(self, viewport=None):
        self.viewport = viewport
        return self.page

    def close(self):
        self.closed = True


class FakeChromium:
    def __init__(self, browser, launch_error=None):
        self.browser = browser
        self.launch_error = launch_error
        self.launch_kwargs = None
        self.cdp_endpoint = None

    def launch(self, **kwargs):
        self.launch_kwargs = kwargs
        if self.launch_error:
            raise self.launch_error
        return self.browser

    def connect_over_cdp(self, endpoint, timeout=None):
        self.cdp_endpoint = endpoint
        return self.browser


class FakePlaywright:
    def __init__(self, chromium):
        self.chromium = chromium

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        return False


def _agent(page=None, launch_error=None, strategy=None):
    browser = FakeBrowser(page or FakePage())
    chromium = FakeChromium(browser, launch_error)
    agent = RenderAgent(strategy or LocalBrowserStrategy(), playwright_factory=lambda: FakePlaywright(chromium))
    return agent, browser, chromium


def test_capture_returns_png_and_closes_browser():
    agent, browser, chromium = _agent()
    image = agent.capture("https://example.test/chart", "canvas", viewport={"width": 800, "height": 600})

    assert image == b"\x89PNG-bytes"
    assert browser.closed
    assert browser.viewport == {"width": 800, "height": 600}
    assert chromium.launch_kwargs["headless"] is True


def test_missing_ready_signal_still_captures():
    agent, browser, _ = _agent(FakePage(ready_error=PlaywrightTimeoutError("no canvas")))
    assert agent.capture("https://example.test/chart", "canvas") == b"\x89PNG-bytes"
    assert browser.closed


def test_launch_failure():
    agent, _, _ = _agent(launch_error=PlaywrightError("executable doesn't exist"))
    with pytest.raises(RenderError) as info:
        agent.capture("https://example.test/chart", "canvas")
    assert info.value.reason is RenderErrorReason.LAUNCH_FAILED


def test_navigation_timeout_closes_browser():
    agent, browser, _ = _agent(FakePage(goto_error=PlaywrightTimeoutError("Timeout 45000ms exceeded")))
    with pytest.raises(RenderError) as info:
        agent.capture("https://example.test/chart", "canvas")
    assert info.value.reason is RenderErrorReason.NAVIGATION_TIMEOUT
    assert browser.closed


def test_screenshot_failure_closes_browser():
    agent, browser, _ = _agent(FakePage(shot_error=PlaywrightError("Target closed")))
    with pytest.raises(RenderError) as info:
        agent.capture("https://example.test/chart", "canvas")
    assert info.value.reason is RenderErrorReason.CAPTURE_FAILED
    assert browser.closed


def test_close_failure_does_not_mask_result():
    agent, browser, _ = _agent()

    def _broken_close():
        raise PlaywrightError("already closed")

    browser.close = _broken_close
    assert agent.capture("https://example.test/chart", "canvas") == b"\x89PNG-bytes"


def test_managed_strategy_passes_flags_and_binary():
    agent, _, chromium = _agent(strategy=ManagedBrowserStrategy("/opt/chromium/chrome"))
    agent.capture("https://example.test/chart", "canvas")
    assert chromium.launch_kwargs["args"] == MANAGED_ARGS
    assert chromium.launch_kwargs["executable_path"] == "/opt/chromium/chrome"


def test_remote_strategy_connects_over_cdp():
    agent, _, chromium = _agent(strategy=RemoteBrowserStrategy("wss://browser.example.test"))
    agent.capture("https://example.test/chart", "canvas")
    assert chromium.cdp_endpoint == "wss://browser.example.test"
    assert chromium.launch_kwargs is None


@pytest.mark.parametrize(
    "render_cfg, env, expected",
    [
        ({"mode": "auto"}, {}, LocalBrowserStrategy),
        ({"mode": "auto"}, {"VERCEL": "1"}, ManagedBrowserStrategy),
        ({"mode": "auto"}, {"AWS_LAMBDA_FUNCTION_NAME": "agent"}, ManagedBrowserStrategy),
        ({"mode": "auto"}, {"BROWSER_WS_ENDPOINT": "wss://b.test"}, RemoteBrowserStrategy),
        ({"mode": "local"}, {"VERCEL": "1"}, LocalBrowserStrategy),
        ({"mode": "managed"}, {}, ManagedBrowserStrategy),
        ({"mode": "remote", "ws_endpoint": "wss://cfg.test"}, {}, RemoteBrowserStrategy),
    ],
)
def test_select_launch_strategy(render_cfg, env, expected):
    assert isinstance(select_launch_strategy(render_cfg, env), expected)


def test_remote_without_endpoint_is_rejected():
    with pytest.raises(ValueError):
        select_launch_strategy({"mode": "remote"}, {})


def test_unknown_render_mode_is_rejected():
    with pytest.raises(ValueError):
        select_launch_strategy({"mode": "quantum"}, {})


def test_cancelled_capture_closes_browser_without_navigating():
    page = FakePage()
    agent, browser, _ = _agent(page)
    cancel = threading.Event()
    cancel.set()

    with pytest.raises(RenderError) as info:
        agent.capture("https://example.test/chart", "canvas", cancel=cancel)

    assert info.value.reason is RenderErrorReason.CAPTURE_FAILED
    assert page.visited == []
    assert browser.closed
