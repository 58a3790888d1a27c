"""
Firefox page driver.

Wraps a Selenium WebDriver and exposes the handful of tab operations the
session controller needs. Tabs are identified by their window handle.
"""

import logging
from urllib.parse import quote_plus

from selenium import webdriver
from selenium.common.exceptions import TimeoutException, WebDriverException
from selenium.webdriver.firefox.options import Options
from selenium.webdriver.firefox.service import Service
from selenium.webdriver.support.ui import WebDriverWait

from autosearch.settings import Settings

log = logging.getLogger("autosearch")

# Types the query into the search box one character at a time, then submits.
# Resolves with "success" or "error" through Selenium's async callback.
TYPE_QUERY_SCRIPT = """
const query = arguments[0];
const delay = arguments[1];
const done = arguments[arguments.length - 1];
const input = document.querySelector(
    'textarea#sb_form_q, textarea[name="q"], input#sb_form_q, input[name="q"]'
);
if (!input) { done('error'); return; }
input.focus();
input.value = '';
let i = 0;
function typeNext() {
    if (i < query.length) {
        input.value = query.substring(0, i + 1);
        input.dispatchEvent(new Event('input', {bubbles: true}));
        i++;
        setTimeout(typeNext, delay);
        return;
    }
    const form = input.closest('form');
    if (form) {
        form.submit();
    } else {
        input.dispatchEvent(new KeyboardEvent('keydown', {
            key: 'Enter', code: 'Enter', keyCode: 13, bubbles: true
        }));
    }
    done('success');
}
typeNext();
"""

# Starts back-to-back scroll sessions of 1-2s in a random direction until
# window.stopScrolling() is called. Leaves the rewards page and the search
# home page alone.
AMBIENT_SCROLL_SCRIPT = """
const url = window.location.href;
if (url.includes('rewards.bing.com') ||
    (url.includes('bing.com') && !url.includes('/search?q='))) {
    return 'skipped';
}
if (window.stopScrolling) { window.stopScrolling(); }
let active = true;
window.stopScrolling = () => { active = false; };
function scrollSession() {
    if (!active) return;
    const duration = Math.random() * 1000 + 1000;
    const direction = Math.random() > 0.5 ? 1 : -1;
    const steps = Math.floor(duration / 110);
    let step = 0;
    const timer = setInterval(() => {
        if (!active) { clearInterval(timer); return; }
        window.scrollBy(0, direction * (Math.random() * 200 + 50));
        step++;
        if (step >= steps) {
            clearInterval(timer);
            scrollSession();
        }
    }, 110);
}
scrollSession();
return 'started';
"""

STOP_SCROLL_SCRIPT = """
if (window.stopScrolling) { window.stopScrolling(); return true; }
return false;
"""


class PageDriver:
    """
    Manages the Firefox WebDriver lifecycle and drives search tabs.

    Every tab operation switches the driver to the target window first.
    Failures are reported as Selenium ``WebDriverException`` subclasses and
    left for the caller to handle, except page load timeouts which are
    logged and treated as a loaded page.
    """

    def __init__(self, settings: Settings) -> None:
        """
        Initialise the PageDriver.

        Args:
            settings: Validated AutoSearch settings instance.
        """
        self.settings = settings
        self.driver: webdriver.Firefox | None = None

    def _build_options(self) -> Options:
        """
        Construct Firefox options using the persistent AutoSearch profile.

        Returns:
            A configured Firefox Options instance.
        """
        opts = Options()
        if self.settings.headless:
            opts.add_argument("-headless")
        opts.add_argument("--width=1920")
        opts.add_argument("--height=1080")
        opts.add_argument("-profile")
        opts.add_argument(str(self.settings.profile_dir))
        opts.set_preference("dom.webnotifications.enabled", False)
        opts.set_preference("browser.tabs.warnOnClose", False)
        return opts

    def start(self) -> bool:
        """
        Boot Firefox and prepare the driver for use.

        Returns:
            True if the browser started successfully, False otherwise.
        """
        self.settings.profile_dir.mkdir(parents=True, exist_ok=True)
        log.info("Booting Firefox...")
        try:
            service = Service(executable_path=str(self.settings.geckodriver_path))
            self.driver = webdriver.Firefox(
                options=self._build_options(),
                service=service,
            )
            self.driver.set_page_load_timeout(self.settings.page_load_timeout)
            return True
        except Exception as e:
            log.error(f"Boot failed: {e}")
            self.driver = None
            return False

    def stop(self) -> None:
        """Quit the WebDriver and clear the driver reference."""
        if self.driver:
            try:
                self.driver.quit()
            except Exception:
                pass
            self.driver = None

    def restart(self) -> bool:
        """
        Stop the current browser instance and start a fresh one.

        Open tabs are lost, so any stored tab id becomes stale.

        Returns:
            True if the restart succeeded, False otherwise.
        """
        log.info("Restarting browser...")
        self.stop()
        return self.start()

    def _require(self) -> webdriver.Firefox:
        if not self.driver:
            raise WebDriverException("Browser is not running")
        return self.driver

    def _get(self, url: str) -> None:
        try:
            self._require().get(url)
        except TimeoutException:
            log.warning(f"Page load timed out, proceeding anyway: {url}")

    def results_url(self, query: str) -> str:
        return self.settings.results_url.format(query=quote_plus(query))

    def tab_exists(self, tab_id: str) -> bool:
        """
        Check whether a tab is still open.

        Args:
            tab_id: Window handle of the tab.

        Returns:
            True if the handle belongs to an open window.
        """
        if not self.driver:
            return False
        return tab_id in self.driver.window_handles

    def create_tab(self, url: str) -> str:
        """
        Open a new tab and load ``url`` in it.

        Args:
            url: Address to load.

        Returns:
            The new tab's window handle.
        """
        driver = self._require()
        driver.switch_to.new_window("tab")
        self._get(url)
        return driver.current_window_handle

    def activate(self, tab_id: str) -> None:
        """Bring ``tab_id`` to the foreground and make it the driver's target."""
        self._require().switch_to.window(tab_id)

    def navigate(self, tab_id: str, url: str) -> None:
        """Activate ``tab_id`` and load ``url`` in it."""
        self.activate(tab_id)
        self._get(url)

    def wait_for_load(self, tab_id: str, timeout: float | None = None) -> bool:
        """
        Wait until the tab's document has finished loading.

        Args:
            tab_id: Window handle of the tab.
            timeout: Seconds to wait; defaults to the page load timeout.

        Returns:
            True if the page reported ``complete`` in time, False otherwise.
        """
        self.activate(tab_id)
        timeout = self.settings.page_load_timeout if timeout is None else timeout
        try:
            WebDriverWait(self._require(), timeout).until(
                lambda d: d.execute_script("return document.readyState") == "complete"
            )
            return True
        except TimeoutException:
            log.warning(f"Tab {tab_id} did not finish loading within {timeout}s")
            return False

    def submit_query(self, tab_id: str, query: str) -> bool:
        """
        Type ``query`` into the search box of ``tab_id`` and submit it.

        Args:
            tab_id: Window handle of a tab showing the search page.
            query: Text to type.

        Returns:
            True if the search box was found and the query submitted.
        """
        driver = self._require()
        self.activate(tab_id)
        typing_seconds = len(query) * self.settings.typing_delay_ms / 1000
        driver.set_script_timeout(typing_seconds + 10)
        result = driver.execute_async_script(
            TYPE_QUERY_SCRIPT, query, self.settings.typing_delay_ms
        )
        return result == "success"

    def start_ambient_scroll(self, tab_id: str) -> bool:
        """
        Start endless randomized scrolling on ``tab_id``.

        Returns:
            True if scrolling started, False if the page is one that is not scrolled.
        """
        self.activate(tab_id)
        return self._require().execute_script(AMBIENT_SCROLL_SCRIPT) == "started"

    def stop_ambient_scroll(self, tab_id: str) -> bool:
        """
        Halt scrolling started by ``start_ambient_scroll``.

        Returns:
            True if a running scroll was stopped.
        """
        self.activate(tab_id)
        return self._require().execute_script(STOP_SCROLL_SCRIPT) is True
