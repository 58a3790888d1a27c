"""
Validated configuration for the AutoSearch agent.
"""

import os
from pathlib import Path

from pydantic import BaseModel, Field, model_validator


class Settings(BaseModel):
    """
    Validated configuration for AutoSearch.

    All fields have sensible defaults and can be overridden by passing
    kwargs. Path defaults respect the AUTOSEARCH_STATE_DIR,
    AUTOSEARCH_PROFILE and GECKODRIVER_PATH environment variables.
    """

    state_dir: Path = Path(os.getenv("AUTOSEARCH_STATE_DIR", "/tmp/autosearch"))
    """Directory holding the durable store, wake requests and command inbox."""

    profile_dir: Path = Path(os.getenv("AUTOSEARCH_PROFILE", "/tmp/autosearch_profile"))
    """Firefox profile directory; keeps the search engine login across runs."""

    geckodriver_path: Path = Path(
        os.getenv("GECKODRIVER_PATH", "/usr/local/bin/geckodriver")
    )
    """Path to the geckodriver binary."""

    headless: bool = False
    """Run Firefox without a visible window."""

    page_load_timeout: int = Field(default=45, ge=5)
    """Default page load timeout in seconds."""

    search_url: str = "https://www.bing.com"
    """Search home page where queries are typed."""

    results_url: str = "https://www.bing.com/search?q={query}"
    """Results page template used when a query is navigated to directly."""

    completion_url: str = "https://rewards.bing.com"
    """Destination shown on the active tab once every topic is done."""

    submit_attempts: int = Field(default=3, ge=1)
    """Typed-query attempts before falling back to a fresh tab."""

    submit_backoff: float = Field(default=1.0, ge=0)
    """Seconds to wait between failed typed-query attempts."""

    typing_delay_ms: int = Field(default=150, ge=0)
    """Delay between simulated keystrokes."""

    activate_wait: float = Field(default=0.5, ge=0)
    """Seconds to let a reused tab settle after activation."""

    settle_wait: float = Field(default=1.0, ge=0)
    """Seconds to wait after the search page loads before typing."""

    results_wait: float = Field(default=2.0, ge=0)
    """Seconds to wait for results before starting to scroll."""

    continuous_delay_min: float = Field(default=3.0, ge=0)
    """Minimum pause between searches in continuous mode."""

    continuous_delay_max: float = Field(default=15.0, ge=0)
    """Maximum pause between searches in continuous mode."""

    interval_delay_min: float = Field(default=3.0, ge=0)
    """Minimum pause between searches inside an interval batch."""

    interval_delay_max: float = Field(default=8.0, ge=0)
    """Maximum pause between searches inside an interval batch."""

    interval_batch_size: int = Field(default=5, ge=1)
    """Searches per batch before a long pause in interval mode."""

    interval_pause_minutes: float = Field(default=15.0, gt=0)
    """Base length of the long pause in interval mode."""

    interval_pause_jitter: int = Field(default=60, ge=0)
    """Upper bound of random seconds added to the long pause."""

    backup_check_minutes: float = Field(default=5.0, gt=0)
    """Period of the timer that repairs a lost long-pause wake request."""

    start_debounce: float = Field(default=2.0, ge=0)
    """Window in seconds during which a repeated start command is ignored."""

    download_debounce: float = Field(default=1.0, ge=0)
    """Window in seconds during which a repeated log download is ignored."""

    tick_interval: float = Field(default=1.0, gt=0)
    """Seconds between agent loop iterations."""

    poll_interval: float = Field(default=0.25, gt=0)
    """Granularity of waits inside a search step, between command polls."""

    reply_timeout: float = Field(default=10.0, gt=0)
    """Seconds a command sender waits for the agent's reply."""

    log_max_entries: int = Field(default=500, ge=1)
    """Formatted log lines kept for download."""

    topic_count: int = Field(default=90, ge=1, le=100)
    """Number of topics requested for a new session."""

    topics_path: Path | None = None
    """Optional JSON file with a list of topics, tried before the web sources."""

    request_timeout: float = Field(default=10.0, gt=0)
    """Timeout for topic source HTTP requests."""

    fallback_topics: list[str] = Field(
        default=[
            "weather forecast",
            "world news",
            "healthy recipes",
            "space exploration",
            "history of science",
            "football scores",
            "travel destinations",
            "stock market today",
            "classical music",
            "national parks",
        ],
        min_length=1,
    )
    """Topics used when every other source fails."""

    fresh_start: bool = False
    """Discard any persisted session when the agent boots."""

    @model_validator(mode="after")
    def _check_ranges(self) -> "Settings":
        if self.continuous_delay_min > self.continuous_delay_max:
            raise ValueError("continuous_delay_min exceeds continuous_delay_max")
        if self.interval_delay_min > self.interval_delay_max:
            raise ValueError("interval_delay_min exceeds interval_delay_max")
        return self

    @property
    def store_path(self) -> Path:
        return self.state_dir / "state.json"

    @property
    def wake_path(self) -> Path:
        return self.state_dir / "wake_requests.json"

    @property
    def log_store_path(self) -> Path:
        return self.state_dir / "app_log.json"

    @property
    def inbox_dir(self) -> Path:
        return self.state_dir / "inbox"

    @property
    def heartbeat_file(self) -> Path:
        return self.state_dir / "heartbeat"
