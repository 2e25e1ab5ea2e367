import logging
import time
from typing import Any, Dict

from selenium import webdriver
from selenium.common.exceptions import WebDriverException
from selenium.webdriver.chrome.options import Options
from selenium.webdriver.chrome.service import Service

from sitescan.features.scan.services.queue.host_queue import HostQueue
from sitescan.platform.config import settings
from sitescan.platform.exceptions import AnalyzerError

logger = logging.getLogger(__name__)

NAVIGATION_TIMING_JS = """
const nav = performance.getEntriesByType('navigation')[0];
if (!nav) { return null; }
return {
  ttfb: nav.responseStart - nav.requestStart,
  domContentLoaded: nav.domContentLoadedEventEnd,
  load: nav.loadEventEnd,
  transferSize: nav.transferSize || 0,
  resourceCount: performance.getEntriesByType('resource').length
};
"""

# Counts computed text/background colours over the first elements of the page.
COLOR_SAMPLE_JS = """
const counts = {};
const elements = Array.from(document.querySelectorAll('body, body *')).slice(0, 1500);
for (const el of elements) {
  const style = window.getComputedStyle(el);
  for (const prop of ['color', 'backgroundColor']) {
    const value = style[prop];
    if (!value || value === 'transparent' || value === 'rgba(0, 0, 0, 0)') { continue; }
    const key = prop + '|' + value;
    counts[key] = (counts[key] || 0) + 1;
  }
}
return Object.keys(counts).map(function (key) {
  const parts = key.split('|');
  return {property: parts[0], value: parts[1], count: counts[key]};
});
"""


class BrowserService:
    """Headless Chrome page capture. Every call builds its own driver and always quits it."""

    def __init__(self, page_load_timeout: int = None, chromedriver_path: str = None):
        self.page_load_timeout = page_load_timeout or settings.PAGE_LOAD_TIMEOUT_SECONDS
        self.chromedriver_path = chromedriver_path or settings.CHROMEDRIVER_PATH

    def build_driver(self) -> webdriver.Chrome:
        chrome_options = Options()
        chrome_options.add_argument('--headless')
        chrome_options.add_argument('--no-sandbox')
        chrome_options.add_argument('--disable-dev-shm-usage')
        chrome_options.add_argument(f'--user-agent={settings.USER_AGENT}')

        if self.chromedriver_path:
            driver_service = Service(executable_path=self.chromedriver_path)
            driver = webdriver.Chrome(service=driver_service, options=chrome_options)
        else:
            driver = webdriver.Chrome(options=chrome_options)

        return driver

    def capture_page(self, url: str) -> Dict[str, Any]:
        """
        Render `url` once and collect everything the browser-backed analyzers need.

        Blocking; run it through the HostQueue so only one capture per host
        is in flight. Selenium errors propagate to the caller.

        Returns:
            Dict with load timing, navigation timing and colour samples
        """
        driver = None
        try:
            driver = self.build_driver()
            driver.set_page_load_timeout(self.page_load_timeout)

            start_time = time.time()
            driver.get(url)
            load_time = time.time() - start_time

            timing = driver.execute_script(NAVIGATION_TIMING_JS) or {}
            color_samples = driver.execute_script(COLOR_SAMPLE_JS) or []

            return {
                "url": url,
                "final_url": driver.current_url,
                "page_title": driver.title or None,
                "load_time": load_time,
                "timing": timing,
                "color_samples": color_samples,
            }
        finally:
            if driver:
                try:
                    driver.quit()
                except WebDriverException as e:
                    logger.warning(f"Failed to quit driver for {url}: {e}")


CAPTURE_ATTEMPTS = 3


async def capture_through_queue(url: str, queue: HostQueue, browser: BrowserService, label: str) -> Dict[str, Any]:
    """
    Page capture of `url` through the host queue.

    A host join may hand back the capture of another page on the same host;
    that snapshot is discarded and the URL is submitted again.
    """
    for _ in range(CAPTURE_ATTEMPTS):
        snapshot = await queue.submit(url, lambda: browser.capture_page(url), label=label)
        if snapshot.get("url") == url:
            return snapshot
        logger.info(f"Joined capture of {snapshot.get('url')} while waiting for {url}, resubmitting ({label})")
    raise AnalyzerError(f"Could not capture {url}: host kept serving other pages")
