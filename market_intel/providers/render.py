"""Chart capture through a headless Chromium session (Playwright).

Launch strategies:
    local   — bundled Playwright Chromium on the host.
    managed — constrained runtime (serverless, read-only filesystem): a
              pre-installed Chromium binary with sandbox/shm flags disabled.
    remote  — browser-as-a-service over a persistent CDP websocket.

The strategy is chosen once at startup by ``select_launch_strategy`` from
configuration and environment flags; ``RenderAgent.capture`` never branches
on the environment itself.
"""

import threading
from typing import Any, Callable, Dict, Mapping, Optional

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError
from playwright.sync_api import sync_playwright

from market_intel.core.errors import RenderError, RenderErrorReason
from market_intel.core.logger import logger
from market_intel.providers.base import BrowserLaunchStrategy

MANAGED_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
    "--no-zygote",
    "--single-process",
]
_MANAGED_ENV_FLAGS = ("RENDER_MANAGED", "VERCEL", "AWS_LAMBDA_FUNCTION_NAME")


# ── launch strategies ─────────────────────────────────────────────────────────

class LocalBrowserStrategy(BrowserLaunchStrategy):
    name = "local"

    def launch(self, playwright: Any, timeout_ms: int) -> Any:
        return playwright.chromium.launch(headless=True, timeout=timeout_ms)


class ManagedBrowserStrategy(BrowserLaunchStrategy):
    name = "managed"

    def __init__(self, executable_path: Optional[str] = None) -> None:
        self.executable_path = executable_path

    def launch(self, playwright: Any, timeout_ms: int) -> Any:
        kwargs: Dict[str, Any] = {"headless": True, "args": MANAGED_ARGS, "timeout": timeout_ms}
        if self.executable_path:
            kwargs["executable_path"] = self.executable_path
        return playwright.chromium.launch(**kwargs)


class RemoteBrowserStrategy(BrowserLaunchStrategy):
    name = "remote"

    def __init__(self, ws_endpoint: str) -> None:
        self.ws_endpoint = ws_endpoint

    def launch(self, playwright: Any, timeout_ms: int) -> Any:
        return playwright.chromium.connect_over_cdp(self.ws_endpoint, timeout=timeout_ms)


def select_launch_strategy(
    render_cfg: Mapping[str, Any],
    env: Mapping[str, str],
) -> BrowserLaunchStrategy:
    """Pick the launch strategy from config and environment flags only.

    ``render_cfg["mode"]`` may force ``local``/``managed``/``remote``; with
    ``auto`` a websocket endpoint selects remote, any managed-runtime flag
    selects managed, and everything else runs locally.

    Raises:
        ValueError: ``remote`` forced without an endpoint, or an unknown mode.
    """
    mode = str(render_cfg.get("mode") or "auto").lower()
    ws_endpoint = render_cfg.get("ws_endpoint") or env.get("BROWSER_WS_ENDPOINT", "").strip()
    executable_path = render_cfg.get("executable_path") or env.get("CHROMIUM_EXECUTABLE_PATH", "").strip()
    managed_runtime = any(env.get(flag, "").strip() for flag in _MANAGED_ENV_FLAGS)

    if mode == "remote" or (mode == "auto" and ws_endpoint):
        if not ws_endpoint:
            raise ValueError("render.mode=remote requires BROWSER_WS_ENDPOINT")
        return RemoteBrowserStrategy(ws_endpoint)
    if mode == "managed" or (mode == "auto" and managed_runtime):
        return ManagedBrowserStrategy(executable_path or None)
    if mode in ("local", "auto"):
        return LocalBrowserStrategy()
    raise ValueError(f"Unknown render mode {mode!r}")


# ── RenderAgent ───────────────────────────────────────────────────────────────

class RenderAgent:
    """Opens one exclusive browser session per capture and always closes it.

    Args:
        strategy: How to obtain the browser.
        playwright_factory: Callable returning a Playwright context manager
            (``sync_playwright`` by default).
    """

    def __init__(
        self,
        strategy: BrowserLaunchStrategy,
        playwright_factory: Callable[[], Any] = sync_playwright,
    ) -> None:
        self.strategy = strategy
        self._playwright_factory = playwright_factory

    def capture(
        self,
        target_url: str,
        ready_selector: str,
        viewport: Optional[Dict[str, int]] = None,
        timeout_ms: int = 45000,
        ready_timeout_ms: Optional[int] = None,
        settle_ms: int = 0,
        cancel: Optional[threading.Event] = None,
    ) -> bytes:
        """Navigate to ``target_url``, wait for ``ready_selector``, return PNG bytes.

        A missing ready signal is logged and the capture proceeds anyway. When
        ``cancel`` is set the capture stops at the next step boundary.

        Raises:
            RenderError: ``LaunchFailed``, ``NavigationTimeout`` or ``CaptureFailed``.
                The browser session is closed before the error propagates.
        """
        viewport = viewport or {"width": 1920, "height": 1080}
        ready_timeout_ms = ready_timeout_ms if ready_timeout_ms is not None else timeout_ms
        logger.info(f"RenderAgent[{self.strategy.name}]: capturing {target_url}")

        try:
            with self._playwright_factory() as playwright:
                return self._capture_with(
                    playwright, target_url, ready_selector,
                    viewport, timeout_ms, ready_timeout_ms, settle_ms, cancel,
                )
        except PlaywrightError as exc:
            raise RenderError(RenderErrorReason.LAUNCH_FAILED, str(exc)) from exc

    def _capture_with(
        self,
        playwright: Any,
        target_url: str,
        ready_selector: str,
        viewport: Dict[str, int],
        timeout_ms: int,
        ready_timeout_ms: int,
        settle_ms: int,
        cancel: Optional[threading.Event],
    ) -> bytes:
        try:
            browser = self.strategy.launch(playwright, timeout_ms)
        except PlaywrightError as exc:
            raise RenderError(RenderErrorReason.LAUNCH_FAILED, str(exc)) from exc

        try:
            page = browser.new_page(viewport=viewport)
            _raise_if_cancelled(cancel, "before navigation")

            try:
                page.goto(target_url, wait_until="domcontentloaded", timeout=timeout_ms)
            except PlaywrightError as exc:
                raise RenderError(RenderErrorReason.NAVIGATION_TIMEOUT, str(exc)) from exc

            _raise_if_cancelled(cancel, "before ready wait")

            try:
                page.wait_for_selector(ready_selector, state="visible", timeout=ready_timeout_ms)
            except PlaywrightTimeoutError:
                logger.warning(
                    f"RenderAgent: ready signal {ready_selector!r} not seen within "
                    f"{ready_timeout_ms}ms, capturing partially rendered page"
                )

            if settle_ms:
                page.wait_for_timeout(settle_ms)
            _raise_if_cancelled(cancel, "before screenshot")

            try:
                image = page.screenshot(type="png", timeout=timeout_ms)
            except PlaywrightError as exc:
                raise RenderError(RenderErrorReason.CAPTURE_FAILED, str(exc)) from exc

            logger.info(f"RenderAgent: captured {len(image)} bytes")
            return image
        finally:
            _close_browser(browser)


def _close_browser(browser: Any) -> None:
    """Release the session; a failing close must not mask the capture outcome."""
    try:
        browser.close()
    except PlaywrightError as exc:
        logger.warning(f"RenderAgent: browser close failed: {exc}")


def _raise_if_cancelled(cancel: Optional[threading.Event], step: str) -> None:
    if cancel is not None and cancel.is_set():
        raise RenderError(RenderErrorReason.CAPTURE_FAILED, f"run cancelled {step}")
