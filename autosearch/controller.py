"""
Session controller.

Owns the running Session and moves it through the search cycle:

    start -> queuing -> executing -> cooldown (short | long) -> queuing ...
                                  \\-> completed | stopped

Continuations between topics are durable wake requests rather than
in-process sleeps, so the agent can die and come back between any two
steps. Every wake-up first rehydrates the session from the store if the
in-memory copy is gone.
"""

import logging
import math
import random
import time
from datetime import datetime, timezone
from typing import Any, Callable

from pydantic import ValidationError
from selenium.common.exceptions import WebDriverException

from autosearch.browser import PageDriver
from autosearch.channel import (
    DOWNLOAD_LOGS,
    STOP_ALL,
    STOP_INTERVAL,
    StartSearch,
    parse_command,
)
from autosearch.logs import StoreLogHandler
from autosearch.scheduler import BACKUP_CHECK, CONTINUE_SEARCH, INTERVAL_SEARCH, Scheduler
from autosearch.session import Checkpoint, Mode, Phase, Session
from autosearch.settings import Settings
from autosearch.store import (
    ACTIVE_TAB_ID,
    CURRENT_QUERIES,
    DOWNLOAD_READY,
    INTERVAL_ALARM_NAME,
    INTERVAL_DELAY_MINUTES,
    INTERVAL_KEYS,
    INTERVAL_SEARCH_ACTIVE,
    INTERVAL_START_TIME,
    OPERATIONAL_KEYS,
    DurableStore,
    StoreError,
)

log = logging.getLogger("autosearch")

# Backup-check status lines are logged at most this often.
BACKUP_LOG_EVERY = 10 * 60


class SessionController:
    """
    Drives one search session at a time.

    Cancellation is cooperative: a stop command only sets flags, and the
    in-flight step notices at its next suspension point. A step belongs to
    the Session object it started with; a newer start supersedes it.
    """

    def __init__(
        self,
        settings: Settings,
        store: DurableStore,
        scheduler: Scheduler,
        driver: PageDriver,
        log_sink: StoreLogHandler | None = None,
    ) -> None:
        """
        Initialise the controller.

        Args:
            settings: Validated AutoSearch settings instance.
            store: Durable store for checkpoints and the log download payload.
            scheduler: Durable wake requests.
            driver: Page driver used to submit queries.
            log_sink: Log buffer handed out by ``downloadLogs``.
        """
        self.settings = settings
        self.store = store
        self.scheduler = scheduler
        self.driver = driver
        self.log_sink = log_sink
        self.session: Session | None = None
        self.on_suspend: Callable[[], Any] | None = None
        self._last_start: float | None = None
        self._last_download: float | None = None
        self._last_backup_log: float | None = None

    # --- Commands ---

    def handle(self, message: dict[str, Any]) -> dict[str, str]:
        """
        Dispatch a command message.

        Args:
            message: Raw message, e.g. ``{"action": "stopAll"}``.

        Returns:
            A ``{"status": ...}`` reply.
        """
        try:
            command = parse_command(message)
        except ValidationError as e:
            log.warning(f"Rejected command {message.get('action')!r}: {e.error_count()} errors")
            return {"status": "Invalid command"}
        if isinstance(command, StartSearch):
            return self.start(command.queries, command.mode)
        if command.action == STOP_INTERVAL:
            return self.stop_interval()
        if command.action == STOP_ALL:
            return self.stop_all()
        if command.action == DOWNLOAD_LOGS:
            return self.download_logs()
        return {"status": "Invalid command"}

    def start(self, topics: list[str], mode: Mode) -> dict[str, str]:
        """
        Begin a new session, replacing whatever was running.

        Repeats within ``start_debounce`` seconds are ignored. The first
        step runs from a zero-delay ``continueSearch`` wake request so the
        reply goes out before the browser work starts.
        """
        now = time.monotonic()
        if self._last_start is not None and now - self._last_start < self.settings.start_debounce:
            log.info("Duplicate start ignored")
            return {"status": "Search already started"}
        self._last_start = now

        if self.session is not None:
            self.session.stopped = True
        session = Session.begin(topics, mode)
        self.session = session
        log.info(f"Starting {mode.value} search with {len(topics)} topics")

        self._clear_scheduler()
        self._remove(OPERATIONAL_KEYS)
        self._checkpoint(session)
        self._wake(CONTINUE_SEARCH, 0)
        return {"status": "Search started"}

    def stop_interval(self) -> dict[str, str]:
        self._halt()
        log.info("Interval mode stopped")
        return {"status": "Interval stopped"}

    def stop_all(self) -> dict[str, str]:
        tab_id = self._halt()
        if tab_id:
            try:
                self.driver.stop_ambient_scroll(tab_id)
            except WebDriverException as e:
                log.debug(f"Failed to stop scrolling on tab {tab_id}: {e}")
        log.info("All searches stopped")
        return {"status": "All searches stopped"}

    def download_logs(self) -> dict[str, str]:
        """
        Publish the activity log under ``downloadReady`` in the store.

        Debounced by ``download_debounce``; the reply only acknowledges the
        request, the payload is fetched from the store.
        """
        now = time.monotonic()
        if (
            self._last_download is not None
            and now - self._last_download < self.settings.download_debounce
        ):
            log.warning("Download request too frequent, ignored")
            return {"status": "Download request ignored"}
        self._last_download = now

        log.info("Preparing log file for download")
        timestamp = datetime.now(timezone.utc).isoformat()
        try:
            if self.log_sink is not None:
                self.log_sink.load()
            content = self.log_sink.content() if self.log_sink is not None else ""
            if content.strip():
                payload = {"content": content, "timestamp": timestamp, "ready": True}
            else:
                log.warning("No logs available for download")
                payload = {
                    "content": "No logs available",
                    "timestamp": timestamp,
                    "ready": False,
                    "error": "No logs available",
                }
        except Exception as e:
            log.error(f"Failed to prepare log file: {e}")
            payload = {"content": "", "timestamp": timestamp, "ready": False, "error": str(e)}
        self._persist({DOWNLOAD_READY: payload})
        return {"status": "Logs download initiated"}

    def _halt(self) -> str | None:
        """
        Stop the current session and wipe its durable traces.

        Returns:
            The id of the tab the session was using, if any.
        """
        session = self.session
        tab_id = None
        if session is not None:
            session.stopped = True
            session.interval_active = False
            session.processing = False
            session.queue.clear()
            session.phase = Phase.STOPPED
            tab_id = session.active_surface_id
        else:
            try:
                tab_id = self.store.get([ACTIVE_TAB_ID]).get(ACTIVE_TAB_ID)
            except StoreError:
                pass
        self._clear_scheduler()
        self._remove(OPERATIONAL_KEYS)
        return tab_id

    # --- Lifecycle ---

    def boot(self) -> None:
        """
        Apply the startup policy.

        With ``fresh_start`` any persisted session is discarded. Otherwise a
        persisted session that has no live wake request (the agent died in
        the middle of a step) gets an immediate ``continueSearch``.
        """
        if self.settings.fresh_start:
            log.info("Fresh start, clearing previous session state")
            self._clear_scheduler()
            self._remove(OPERATIONAL_KEYS)
            return
        try:
            persisted = self.store.get([CURRENT_QUERIES])
            live = self.scheduler.all()
        except StoreError as e:
            log.error(f"Cannot read persisted session: {e}")
            return
        if persisted.get(CURRENT_QUERIES) and not live:
            log.info("Resuming interrupted session")
            self._wake(CONTINUE_SEARCH, 0)

    def on_wake(self, name: str) -> None:
        """
        Handle a fired wake request.

        Args:
            name: ``continueSearch``, ``intervalSearch`` or ``backupCheck``.
        """
        log.debug(f"Wake request fired: {name}")
        session = self._rehydrate()
        if session is None:
            log.info(f"No session to resume, ignoring {name}")
            self._clear_wake(name)
            return
        if name == CONTINUE_SEARCH:
            if session.queue:
                self._execute(session)
            else:
                self._advance(session)
        elif name == INTERVAL_SEARCH:
            self._resume_after_pause(session, "interval timer")
        elif name == BACKUP_CHECK:
            self._backup_check(session)
        else:
            log.warning(f"Unknown wake request {name!r}")

    def _rehydrate(self) -> Session | None:
        """
        Return the in-memory session, reloading it from the store if empty.

        Returns:
            The session, or None if nothing was persisted.
        """
        if self.session is not None and self.session.topics:
            return self.session
        try:
            data = self.store.get(Checkpoint.keys())
            if not data.get(CURRENT_QUERIES):
                return None
            checkpoint = Checkpoint.model_validate(data)
        except (StoreError, ValidationError) as e:
            log.error(f"Failed to rehydrate state: {e}")
            return None
        self.session = Session.from_checkpoint(checkpoint)
        log.info(
            f"State rehydrated: {self.session.cursor}/{len(self.session.topics)} done, "
            f"mode={self.session.mode.value}, interval_count={self.session.interval_count}, "
            f"tab={self.session.active_surface_id}"
        )
        return self.session

    # --- Search cycle ---

    def _advance(self, session: Session) -> None:
        """Queue the next topic and execute it, or complete the session."""
        if session.halted or self._cancelled(session):
            log.info("Search stopped, not starting search")
            return
        if session.processing:
            log.debug("Processing already in progress, skipping")
            return
        session.phase = Phase.QUEUING
        if session.exhausted:
            self._complete(session)
            return
        topic = None if session.queue else session.enqueue_next()
        if topic is not None:
            log.info(f"Queued topic {session.cursor}/{len(session.topics)}: {topic}")
            self._checkpoint(session)
        self._execute(session)

    def _execute(self, session: Session) -> None:
        """Submit the pending topic, then decide what happens next."""
        if self._cancelled(session):
            return
        if session.processing:
            log.debug("Processing already in progress, skipping")
            return
        if not session.queue:
            self._schedule_next(session)
            return

        session.processing = True
        session.phase = Phase.EXECUTING
        query = session.queue[0]
        log.info(f"Processing query: {query}")
        try:
            if not self._run_query(session, query):
                log.info("Search stopped during query, abandoning step")
                return
        except WebDriverException as e:
            log.error(f"Error processing query {query!r}: {e}")
            if self._cancelled(session):
                return
            self._consume(session)
        except Exception:
            # pop_due already consumed the firing request; re-arm it for the pending topic.
            session.processing = False
            if not self._cancelled(session):
                self._wake(CONTINUE_SEARCH, self.settings.submit_backoff)
            raise

        session.processing = False
        self._checkpoint(session)
        self._schedule_next(session)

    def _consume(self, session: Session) -> None:
        # The pending topic stays queued, and checkpointed, until it reaches a results page.
        if session.queue:
            session.queue.pop(0)

    def _run_query(self, session: Session, query: str) -> bool:
        """
        Get ``query`` onto a results page, typing it if at all possible.

        Returns:
            False if the session was cancelled along the way.
        """
        attempts = self.settings.submit_attempts
        tab_id = None
        for attempt in range(1, attempts + 1):
            if tab_id is None:
                # A tab that cannot be reached or loaded counts as a failed attempt.
                try:
                    tab_id = self._resolve_surface(session)
                except WebDriverException as e:
                    log.error(f"Could not prepare search tab on attempt {attempt}: {e}")
                    tab_id = None
                if self._cancelled(session):
                    return False
                if tab_id is not None and not self._wait(self.settings.settle_wait, session):
                    return False

            submitted = False
            if tab_id is not None:
                log.debug(f"Submitting query, attempt {attempt}/{attempts}: {query}")
                try:
                    submitted = self.driver.submit_query(tab_id, query)
                except WebDriverException as e:
                    log.error(f"Query submission error on attempt {attempt}: {e}")
            if self._cancelled(session):
                return False
            if submitted:
                log.info(f"Query executed: {query} (attempt {attempt})")
                self._consume(session)
                self._checkpoint(session)
                if not self._wait(self.settings.results_wait, session):
                    return False
                self._start_scroll(tab_id)
                return True
            log.warning(f"Query submission failed on attempt {attempt}: {query}")
            if attempt < attempts and not self._wait(self.settings.submit_backoff, session):
                return False

        log.error(f"All {attempts} submission attempts failed, opening fallback tab")
        tab_id = self.driver.create_tab(self.driver.results_url(query))
        if self._cancelled(session):
            return False
        session.active_surface_id = tab_id
        self._consume(session)
        self._checkpoint(session)
        log.info(f"Created fallback tab {tab_id}")
        self.driver.wait_for_load(tab_id)
        return not self._cancelled(session)

    def _resolve_surface(self, session: Session) -> str | None:
        """
        Return a tab showing the search page, reusing the active one if alive.

        Returns:
            The tab id, or None if the session was cancelled meanwhile.
        """
        tab_id = session.active_surface_id
        if tab_id is not None:
            try:
                alive = self.driver.tab_exists(tab_id)
            except WebDriverException:
                alive = False
            if not alive:
                log.warning(f"Active tab {tab_id} no longer exists")
                session.active_surface_id = None
                self._checkpoint(session)
                tab_id = None

        if tab_id is None:
            tab_id = self.driver.create_tab(self.settings.search_url)
            if self._cancelled(session):
                return None
            session.active_surface_id = tab_id
            self._checkpoint(session)
            log.info(f"Created new tab {tab_id}")
            self.driver.wait_for_load(tab_id)
            return None if self._cancelled(session) else tab_id

        log.info(f"Reusing tab {tab_id}")
        try:
            self.driver.activate(tab_id)
        except WebDriverException as e:
            log.warning(f"Could not activate tab {tab_id}, continuing anyway: {e}")
        if not self._wait(self.settings.activate_wait, session):
            return None
        try:
            self.driver.stop_ambient_scroll(tab_id)
        except WebDriverException as e:
            log.debug(f"Failed to stop previous scrolling: {e}")
        self.driver.navigate(tab_id, self.settings.search_url)
        if self._cancelled(session):
            return None
        self.driver.wait_for_load(tab_id)
        return None if self._cancelled(session) else tab_id

    def _start_scroll(self, tab_id: str) -> None:
        try:
            self.driver.start_ambient_scroll(tab_id)
        except WebDriverException as e:
            log.debug(f"Post-search scrolling failed: {e}")

    # --- Scheduling ---

    def _schedule_next(self, session: Session) -> None:
        """Pick the next state once a step has finished."""
        if session.halted:
            log.info("Search stopped, not scheduling next search")
            session.phase = Phase.STOPPED
            self._clear_scheduler()
            self._remove(OPERATIONAL_KEYS)
            return
        if session.exhausted:
            self._complete(session)
            return

        batch = self.settings.interval_batch_size
        if session.mode is Mode.INTERVAL:
            if session.interval_count > 0 and session.interval_count % batch == 0:
                self._begin_long_pause(session)
                return
            delay = random.uniform(
                self.settings.interval_delay_min, self.settings.interval_delay_max
            )
            log.debug(
                f"Interval mode: {session.interval_count % batch}/{batch}, "
                f"next search in {delay:.1f}s"
            )
        else:
            delay = random.uniform(
                self.settings.continuous_delay_min, self.settings.continuous_delay_max
            )
            log.debug(f"Continuous mode: next search in {delay:.1f}s")
        session.phase = Phase.COOLDOWN_SHORT
        self._wake(CONTINUE_SEARCH, delay)

    def _begin_long_pause(self, session: Session) -> None:
        minutes = (
            self.settings.interval_pause_minutes
            + random.randint(0, self.settings.interval_pause_jitter) / 60
        )
        log.info(
            f"Interval mode: {session.interval_count} searches done "
            f"({session.cursor}/{len(session.topics)}), pausing {minutes:.1f} minutes"
        )
        session.phase = Phase.COOLDOWN_LONG
        self._clear_scheduler()
        self._wake(INTERVAL_SEARCH, minutes * 60)
        self._wake(
            BACKUP_CHECK,
            self.settings.backup_check_minutes * 60,
            period_minutes=self.settings.backup_check_minutes,
        )
        self._persist(
            {
                INTERVAL_ALARM_NAME: INTERVAL_SEARCH,
                INTERVAL_START_TIME: time.time() * 1000,
                INTERVAL_DELAY_MINUTES: minutes,
            }
        )
        self._checkpoint(session)

    def _resume_after_pause(self, session: Session, trigger: str) -> None:
        """
        End a long pause and continue with the next batch.

        The pause record in the store is consumed here, so whichever of the
        primary timer and the backup check arrives second finds nothing to do.
        """
        try:
            started = self.store.get([INTERVAL_START_TIME]).get(INTERVAL_START_TIME)
        except StoreError as e:
            log.error(f"Cannot read interval state: {e}")
            return
        if started is None:
            log.info(f"Interval pause already resumed, ignoring {trigger}")
            return
        log.info(
            f"Interval pause over ({trigger}), continuing search cycle after "
            f"{session.interval_count} searches"
        )
        self._clear_wake(INTERVAL_SEARCH)
        self._clear_wake(BACKUP_CHECK)
        self._remove(INTERVAL_KEYS)
        session.interval_count = 0
        self._checkpoint(session)
        self._advance(session)

    def _backup_check(self, session: Session) -> None:
        """Repair or replace a lost long-pause wake request."""
        if session.mode is not Mode.INTERVAL or session.halted:
            self._clear_wake(BACKUP_CHECK)
            return
        try:
            data = self.store.get(
                [INTERVAL_ALARM_NAME, INTERVAL_START_TIME, INTERVAL_DELAY_MINUTES, INTERVAL_SEARCH_ACTIVE]
            )
        except StoreError as e:
            log.error(f"Error checking interval timer: {e}")
            return
        started = data.get(INTERVAL_START_TIME)
        delay_minutes = data.get(INTERVAL_DELAY_MINUTES)
        if not (started and delay_minutes and data.get(INTERVAL_SEARCH_ACTIVE)):
            return

        elapsed = (time.time() * 1000 - started) / 60000
        remaining = delay_minutes - elapsed
        now = time.monotonic()
        if self._last_backup_log is None or now - self._last_backup_log > BACKUP_LOG_EVERY:
            log.info(f"Interval timer check: elapsed {elapsed:.1f}min, remaining {remaining:.1f}min")
            self._last_backup_log = now

        if remaining <= 0:
            log.info("Interval time expired (backup check), continuing now")
            self._resume_after_pause(session, "backup check")
            return
        name = data.get(INTERVAL_ALARM_NAME, INTERVAL_SEARCH)
        try:
            live = self.scheduler.get(name)
        except StoreError as e:
            log.error(f"Error checking interval timer: {e}")
            return
        if live is None:
            log.warning(f"Interval timer lost, recreating with {remaining:.1f} minutes left")
            self._wake(name, remaining * 60)

    def _complete(self, session: Session) -> None:
        log.info(f"Completed all {len(session.topics)} queries")
        if session.active_surface_id:
            try:
                self.driver.navigate(session.active_surface_id, self.settings.completion_url)
            except WebDriverException as e:
                log.warning(f"Could not open completion page: {e}")
        session.stopped = True
        session.interval_active = False
        session.phase = Phase.COMPLETED
        self._clear_scheduler()
        self._remove(OPERATIONAL_KEYS)

    # --- Helpers ---

    def _cancelled(self, session: Session) -> bool:
        return session.stopped or session is not self.session

    def _wait(self, seconds: float, session: Session) -> bool:
        """
        Sleep for ``seconds`` while still servicing incoming commands.

        Returns:
            False if the session was cancelled during the wait.
        """
        slices = max(1, math.ceil(seconds / self.settings.poll_interval))
        for _ in range(slices):
            if self.on_suspend is not None:
                self.on_suspend()
            if self._cancelled(session):
                return False
            time.sleep(seconds / slices)
        return not self._cancelled(session)

    def _wake(self, name: str, delay_seconds: float, period_minutes: float | None = None) -> None:
        try:
            self.scheduler.create(name, delay_seconds, period_minutes=period_minutes)
        except StoreError as e:
            log.error(f"Could not arrange wake request {name}: {e}")

    def _clear_wake(self, name: str) -> None:
        try:
            self.scheduler.clear(name)
        except StoreError as e:
            log.error(f"Could not clear wake request {name}: {e}")

    def _clear_scheduler(self) -> None:
        try:
            self.scheduler.clear_all()
        except StoreError as e:
            log.error(f"Could not clear wake requests: {e}")

    def _checkpoint(self, session: Session) -> None:
        self._persist(session.checkpoint().to_store())

    def _persist(self, values: dict[str, Any]) -> None:
        try:
            self.store.set(values)
        except StoreError as e:
            log.error(f"Could not persist state: {e}")

    def _remove(self, keys: list[str]) -> None:
        try:
            self.store.remove(keys)
        except StoreError as e:
            log.error(f"Could not clear stored state: {e}")
