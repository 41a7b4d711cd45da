"""
Tests for share links and entry mode.
"""

import pytest

from ..session import EntryMode, build_share_link, parse_entry


class TestParseEntry:
    """Tests for parse_entry."""

    def test_link_with_session_joins(self):
        entry = parse_entry("https://poker.example/?session=abc-123")
        assert entry.mode == EntryMode.JOIN
        assert entry.session_id == "abc-123"

    def test_bare_query(self):
        assert parse_entry("?session=abc").session_id == "abc"
        assert parse_entry("session=abc&x=1").session_id == "abc"

    @pytest.mark.parametrize("url", [
        None,
        "",
        "https://poker.example/",
        "https://poker.example/?session=",
        "https://poker.example/?session=%20%20",
        "https://poker.example/?other=1",
    ])
    def test_without_session_creates(self, url):
        entry = parse_entry(url)
        assert entry.mode == EntryMode.CREATE
        assert entry.session_id is None


class TestBuildShareLink:
    """Tests for build_share_link."""

    def test_simple(self):
        assert build_share_link("https://poker.example/", "abc") == "https://poker.example/?session=abc"

    def test_path_defaults_to_root(self):
        assert build_share_link("https://poker.example", "abc") == "https://poker.example/?session=abc"

    def test_keeps_other_params_and_replaces_session(self):
        link = build_share_link("https://poker.example/app?team=red&session=old", "new")
        assert link == "https://poker.example/app?team=red&session=new"

    def test_round_trip(self):
        link = build_share_link("https://poker.example/", "session-42")
        assert parse_entry(link).session_id == "session-42"
