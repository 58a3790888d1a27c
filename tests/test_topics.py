"""
Tests for topic acquisition — autosearch/topics.py

Coverage:
  - Topics file: loading, malformed content
  - Wikipedia and Datamuse sources, including HTTP failures
  - De-duplication and padding from the fallback list
"""

import json
from pathlib import Path
from unittest.mock import MagicMock

import pytest
import requests
from pytest_mock import MockerFixture

from autosearch.settings import Settings
from autosearch.topics import DATAMUSE_API, WIKIPEDIA_API, TopicSource


def response(payload: object) -> MagicMock:
    """Return a mocked requests.Response carrying ``payload`` as JSON."""
    resp = MagicMock()
    resp.json.return_value = payload
    resp.raise_for_status.return_value = None
    return resp


def wikipedia(*titles: str) -> MagicMock:
    return response({"query": {"random": [{"id": i, "title": t} for i, t in enumerate(titles)]}})


@pytest.fixture
def http(mocker: MockerFixture) -> MagicMock:
    """Return a requests.Session stand-in with real headers."""
    session = mocker.MagicMock(spec=requests.Session)
    session.headers = {}
    return session


class TestTopicSource:
    """Tests for TopicSource.fetch() and its sources."""

    def test_sets_user_agent(self, settings: Settings, http: MagicMock) -> None:
        TopicSource(settings, http)
        assert http.headers["User-Agent"].startswith("autosearch/")

    def test_wikipedia_titles(self, settings: Settings, http: MagicMock) -> None:
        """Wikipedia titles should be used when enough are returned."""
        http.get.return_value = wikipedia("Alpha", "Beta", "Gamma")
        topics = TopicSource(settings, http).fetch(3)
        assert topics == ["Alpha", "Beta", "Gamma"]
        assert http.get.call_args.args[0] == WIKIPEDIA_API
        assert http.get.call_args.kwargs["params"]["rnlimit"] == "8"

    def test_duplicates_are_dropped(self, settings: Settings, http: MagicMock) -> None:
        http.get.side_effect = [
            wikipedia("Alpha", "Alpha", "Beta"),
            response([{"word": "gamma"}, {"word": "Beta"}]),
        ]
        topics = TopicSource(settings, http).fetch(3)
        assert topics == ["Alpha", "Beta", "gamma"]

    def test_datamuse_after_wikipedia_failure(
        self, settings: Settings, http: MagicMock
    ) -> None:
        """An HTTP error from Wikipedia should fall through to Datamuse."""
        failing = response({})
        failing.raise_for_status.side_effect = requests.HTTPError("503")
        http.get.side_effect = [failing, response([{"word": "one"}, {"word": "two"}])]

        topics = TopicSource(settings, http).fetch(2)

        assert topics == ["one", "two"]
        assert http.get.call_args.args[0] == DATAMUSE_API

    def test_malformed_wikipedia_response(self, settings: Settings, http: MagicMock) -> None:
        http.get.side_effect = [response({"batchcomplete": ""}), response([])]
        topics = TopicSource(settings, http).fetch(2)
        assert topics == settings.fallback_topics[:2]

    def test_padding_when_all_sources_fail(
        self, settings: Settings, http: MagicMock
    ) -> None:
        """fetch() should always return exactly count topics."""
        http.get.side_effect = requests.ConnectionError("offline")
        topics = TopicSource(settings, http).fetch(25)
        assert len(topics) == 25
        assert set(topics) <= set(settings.fallback_topics)

    def test_topics_file_used_first(
        self, settings: Settings, http: MagicMock, tmp_path: Path
    ) -> None:
        """A topics file with enough entries should avoid any HTTP request."""
        path = tmp_path / "topics.json"
        path.write_text(json.dumps(["red", "green", "blue"]))
        source = TopicSource(settings.model_copy(update={"topics_path": path}), http)

        topics = source.fetch(2)

        assert len(topics) == 2
        assert set(topics) <= {"red", "green", "blue"}
        http.get.assert_not_called()

    def test_malformed_topics_file_is_skipped(
        self, settings: Settings, http: MagicMock, tmp_path: Path
    ) -> None:
        path = tmp_path / "topics.json"
        path.write_text('{"not": "a list"}')
        http.get.return_value = wikipedia("Alpha")
        source = TopicSource(settings.model_copy(update={"topics_path": path}), http)
        assert source.fetch(1) == ["Alpha"]

    def test_default_count(self, settings: Settings, http: MagicMock) -> None:
        http.get.side_effect = requests.Timeout()
        assert len(TopicSource(settings, http).fetch()) == settings.topic_count
