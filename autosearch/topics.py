"""
Topic acquisition.

Tries a local topics file, then Wikipedia's random article list, then
Datamuse related words, and finally pads from the configured fallback
topics. Whatever happens upstream, ``fetch`` returns exactly the requested
number of topics.
"""

import json
import logging
import random

import requests

from autosearch.settings import Settings

log = logging.getLogger("autosearch")

WIKIPEDIA_API = "https://en.wikipedia.org/w/api.php"
DATAMUSE_API = "https://api.datamuse.com/words"
USER_AGENT = "autosearch/0.1 (topic fetcher)"


class TopicSource:
    """Supplies query strings for a new session."""

    def __init__(self, settings: Settings, http: requests.Session | None = None) -> None:
        self.settings = settings
        self.http = http or requests.Session()
        self.http.headers.setdefault("User-Agent", USER_AGENT)

    def _from_file(self, count: int) -> list[str]:
        path = self.settings.topics_path
        if path is None or not path.exists():
            return []
        try:
            topics = json.loads(path.read_text())
        except (OSError, ValueError) as e:
            log.warning(f"Failed to load {path.name}: {e}")
            return []
        if not isinstance(topics, list):
            log.warning(f"{path.name} does not contain a list of topics")
            return []
        topics = [str(t) for t in topics if str(t).strip()]
        random.shuffle(topics)
        log.info(f"Loaded {len(topics)} topics from {path.name}")
        return topics[:count]

    def _from_wikipedia(self, count: int) -> list[str]:
        # Ask for a few extra to absorb duplicates.
        response = self.http.get(
            WIKIPEDIA_API,
            params={
                "action": "query",
                "format": "json",
                "list": "random",
                "rnlimit": str(min(count + 5, 500)),
                "rnnamespace": "0",
            },
            timeout=self.settings.request_timeout,
        )
        response.raise_for_status()
        data = response.json()
        if "query" not in data or "random" not in data["query"]:
            raise ValueError("Invalid Wikipedia API response structure")
        return [item["title"] for item in data["query"]["random"]]

    def _from_datamuse(self, count: int) -> list[str]:
        seed = random.choice(self.settings.fallback_topics)
        response = self.http.get(
            DATAMUSE_API,
            params={"ml": seed, "max": str(min(count, 1000))},
            timeout=self.settings.request_timeout,
        )
        response.raise_for_status()
        return [item["word"] for item in response.json() if item.get("word")]

    def fetch(self, count: int | None = None) -> list[str]:
        """
        Collect topics for a session.

        Args:
            count: Number of topics wanted; defaults to ``settings.topic_count``.

        Returns:
            Exactly ``count`` topic strings.
        """
        count = self.settings.topic_count if count is None else count
        topics: list[str] = []

        def add(batch: list[str]) -> None:
            for topic in batch:
                if topic not in topics:
                    topics.append(topic)

        add(self._from_file(count))
        for name, source in (("Wikipedia", self._from_wikipedia), ("Datamuse", self._from_datamuse)):
            if len(topics) >= count:
                break
            try:
                batch = source(count - len(topics))
                log.info(f"Loaded {len(batch)} topics from {name}")
                add(batch)
            except (requests.RequestException, ValueError, KeyError, TypeError) as e:
                log.warning(f"{name} topic fetch failed: {e}")

        if len(topics) < count:
            log.info(f"Padding {count - len(topics)} topics from fallback list")
            fallback = self.settings.fallback_topics
            while len(topics) < count:
                topics.append(fallback[len(topics) % len(fallback)])
        return topics[:count]
