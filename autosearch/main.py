#!/usr/bin/env python3
"""
AutoSearch — automated search agent.

Boots Firefox with a persistent profile, waits for commands from the
operator, and works through a list of search topics with human-like
pacing. Progress is checkpointed to disk so the agent can be killed and
restarted at any point without losing its place.
"""

import logging
import signal
import sys
import time

from autosearch.browser import PageDriver
from autosearch.channel import CommandChannel
from autosearch.controller import SessionController
from autosearch.logs import StoreLogHandler, attach
from autosearch.scheduler import Scheduler
from autosearch.settings import Settings
from autosearch.store import DurableStore

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    datefmt="%H:%M:%S",
    stream=sys.stdout,
)
log = logging.getLogger("autosearch")


# ---------------------------------------------------------------------------
# Agent
# ---------------------------------------------------------------------------


class Agent:
    """
    Main process for the AutoSearch agent.

    Wires the durable store, wake requests, page driver and command inbox
    to the SessionController, then runs the polling loop that delivers
    commands and fired wake requests to it.
    """

    def __init__(self, settings: Settings) -> None:
        """
        Initialise the Agent with the provided settings.

        Args:
            settings: Validated AutoSearch settings instance.
        """
        self.settings = settings
        self.store = DurableStore(settings.store_path)
        self.scheduler = Scheduler(settings.wake_path)
        # Log lines get their own file; state.json only holds session state.
        self.log_store = DurableStore(settings.log_store_path)
        self.log_sink: StoreLogHandler = attach(
            StoreLogHandler(self.log_store, max_entries=settings.log_max_entries)
        )
        self.browser = PageDriver(settings)
        self.channel = CommandChannel(settings.inbox_dir, settings.reply_timeout)
        self.controller = SessionController(
            settings, self.store, self.scheduler, self.browser, self.log_sink
        )
        self.controller.on_suspend = self._drain_commands

    def _update_heartbeat(self) -> None:
        """Touch the heartbeat file so an external healthcheck knows the process is alive."""
        self.settings.heartbeat_file.parent.mkdir(parents=True, exist_ok=True)
        self.settings.heartbeat_file.touch(exist_ok=True)

    def _drain_commands(self) -> None:
        self.channel.drain(self.controller.handle)

    def tick(self) -> None:
        """
        Run one loop iteration: deliver waiting commands, then due wake requests.
        """
        self._drain_commands()
        for name in self.scheduler.pop_due():
            self.controller.on_wake(name)
        self._update_heartbeat()

    def run(self) -> None:
        """
        Start the agent loop.

        Registers signal handlers for clean shutdown, applies the startup
        policy, boots the browser, then runs indefinitely, restarting the
        browser after unexpected errors.
        """
        signal.signal(signal.SIGINT, lambda s, f: sys.exit(0))
        signal.signal(signal.SIGTERM, lambda s, f: sys.exit(0))

        log.info("AutoSearch agent started")
        self.controller.boot()
        if not self.browser.start():
            sys.exit(1)

        try:
            while True:
                try:
                    self.tick()
                except Exception as e:
                    log.error(f"Loop error: {e}")
                    self.browser.restart()
                time.sleep(self.settings.tick_interval)
        finally:
            self.browser.stop()


# ---------------------------------------------------------------------------
# Entry Point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    Agent(settings=Settings()).run()
