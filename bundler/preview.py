"""
Preview Capture

Headless-browser screenshot of a running viewer page. Injected into the
publisher as a Screenshotter so tests can substitute a fake.
"""

from pathlib import Path
from typing import Protocol, Tuple

VIEWPORT: Tuple[int, int] = (1280, 720)
TIMEOUT_SECONDS = 45.0


class PreviewError(Exception):
    """Error capturing a preview image."""
    pass


class Screenshotter(Protocol):
    def capture(self, url: str, output_path: Path, timeout: float = TIMEOUT_SECONDS) -> Path:
        """Render url and write a PNG to output_path. Raises on failure or timeout."""
        ...


class NullScreenshotter:
    """Screenshotter that never captures anything."""

    def capture(self, url: str, output_path: Path, timeout: float = TIMEOUT_SECONDS) -> Path:
        raise PreviewError("Preview capture is disabled")


class PlaywrightScreenshotter:
    """Captures with headless Chromium via Playwright (install the 'preview' extra)."""

    def __init__(self, viewport: Tuple[int, int] = VIEWPORT):
        self.viewport = viewport

    def capture(self, url: str, output_path: Path, timeout: float = TIMEOUT_SECONDS) -> Path:
        try:
            from playwright.sync_api import Error as PlaywrightError
            from playwright.sync_api import sync_playwright
        except ImportError:
            raise PreviewError("playwright is not installed (pip install 'room-bundler[preview]')")

        output_path.parent.mkdir(parents=True, exist_ok=True)
        width, height = self.viewport
        try:
            with sync_playwright() as p:
                browser = p.chromium.launch(headless=True)
                try:
                    page = browser.new_page(viewport={"width": width, "height": height})
                    page.goto(url, wait_until="networkidle", timeout=timeout * 1000)
                    page.screenshot(path=str(output_path), full_page=False)
                finally:
                    browser.close()
        except PlaywrightError as e:
            raise PreviewError(f"Failed to capture {url}: {e}")

        return output_path
