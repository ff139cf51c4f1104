"""Browser-driven capture of the detail endpoint's access credential.

The public item page issues its own authenticated detail request. Opening it
in a headless Chromium and listening to outgoing requests is the only way to
obtain a bearer token; the API has no login flow for it.
"""

from __future__ import annotations

import asyncio
import time
from typing import Protocol
from urllib.parse import quote

from playwright.async_api import Browser, Playwright, Request, async_playwright
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from agilwatch.domain.models import AccessCredential
from agilwatch.errors import CaptureTimeout, CredentialCaptureError
from agilwatch.infrastructure.observability import get_logger, record_credential_capture

logger = get_logger(__name__)

BEARER_PREFIX = "Bearer "


class CredentialSource(Protocol):
    """Anything able to produce a fresh :class:`AccessCredential`."""

    async def acquire(self, code_hint: str) -> AccessCredential: ...


def extract_credential(url: str, headers: dict[str, str], api_url: str) -> AccessCredential | None:
    """Return a credential if ``url``/``headers`` belong to an authenticated detail call."""
    if not url.startswith(api_url) or "action=ficha" not in url or "code=" not in url:
        return None
    lowered = {key.lower(): value for key, value in headers.items()}
    authorization = lowered.get("authorization") or ""
    if not authorization.startswith(BEARER_PREFIX):
        return None
    token = authorization[len(BEARER_PREFIX):].strip()
    if not token:
        return None
    return AccessCredential(token=token, api_key=lowered.get("x-api-key") or None)


class PlaywrightCredentialCapture:
    """Capture credentials by loading an item's public page in Chromium.

    The browser is launched on first use and reused for later captures.
    Use as an async context manager so it is always closed::

        async with PlaywrightCredentialCapture(...) as capture:
            credential = await capture.acquire("1234-56-COT24")
    """

    def __init__(
        self,
        *,
        api_url: str,
        detail_page_url: str,
        user_agent: str | None = None,
        headless: bool = True,
        timeout_seconds: float = 45.0,
    ) -> None:
        self.api_url = api_url
        self.detail_page_url = detail_page_url
        self.user_agent = user_agent
        self.headless = headless
        self.timeout_seconds = timeout_seconds
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._launch_lock = asyncio.Lock()

    async def __aenter__(self) -> "PlaywrightCredentialCapture":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def _ensure_browser(self) -> Browser:
        async with self._launch_lock:
            if self._browser is None:
                if self._playwright is None:
                    self._playwright = await async_playwright().start()
                try:
                    self._browser = await self._playwright.chromium.launch(
                        headless=self.headless
                    )
                except PlaywrightError:
                    await self._playwright.stop()
                    self._playwright = None
                    raise
                logger.debug("Launched Chromium (headless=%s)", self.headless)
            return self._browser

    def page_url(self, code: str) -> str:
        return f"{self.detail_page_url}?code={quote(code)}"

    async def acquire(self, code_hint: str) -> AccessCredential:
        """Load the page for ``code_hint`` and wait for an authenticated detail request.

        Raises:
            CaptureTimeout: If no qualifying request appears within the timeout.
            CredentialCaptureError: If the browser fails for any other reason.
        """
        started = time.monotonic()
        try:
            credential = await self._capture(code_hint)
        except CredentialCaptureError as exc:
            outcome = "timeout" if isinstance(exc, CaptureTimeout) else "failed"
            record_credential_capture(outcome)
            raise
        record_credential_capture("success")
        logger.info(
            "Captured access credential via %s in %.1fs",
            code_hint,
            time.monotonic() - started,
        )
        return credential

    async def _capture(self, code: str) -> AccessCredential:
        try:
            browser = await self._ensure_browser()
            context = await browser.new_context(user_agent=self.user_agent)
        except PlaywrightError as exc:
            raise CredentialCaptureError(code, f"browser launch failed: {exc}") from exc

        loop = asyncio.get_running_loop()
        captured: asyncio.Future[AccessCredential] = loop.create_future()

        def on_request(request: Request) -> None:
            if captured.done():
                return
            credential = extract_credential(request.url, request.headers, self.api_url)
            if credential is not None:
                captured.set_result(credential)

        try:
            page = await context.new_page()
            page.on("request", on_request)
            deadline = time.monotonic() + self.timeout_seconds
            await page.goto(
                self.page_url(code),
                wait_until="domcontentloaded",
                timeout=self.timeout_seconds * 1000,
            )
            remaining = max(deadline - time.monotonic(), 0.0)
            return await asyncio.wait_for(captured, timeout=remaining)
        except (asyncio.TimeoutError, PlaywrightTimeoutError) as exc:
            # The page may time out after its detail request was already seen.
            if captured.done() and not captured.cancelled():
                return captured.result()
            raise CaptureTimeout(
                code, f"no authenticated detail request within {self.timeout_seconds}s"
            ) from exc
        except PlaywrightError as exc:
            raise CredentialCaptureError(code, f"page load failed: {exc}") from exc
        finally:
            if not captured.done():
                captured.cancel()
            await context.close()

    async def close(self) -> None:
        if self._browser is not None:
            await self._browser.close()
            self._browser = None
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None


__all__ = [
    "CredentialSource",
    "PlaywrightCredentialCapture",
    "extract_credential",
]
