"""Tests for refresh location normalization and registry construction."""

import pytest

from history_server.application.exceptions import ConfigurationError
from history_server.application.registry import (
    RefreshLocationRegistry,
    normalize_location,
)

from helpers import InMemoryStore, StubResolver


# =============================================================================
# Test: Location Normalization
# =============================================================================


@pytest.mark.unit
class TestNormalizeLocation:

    def test_trailing_slashes_are_removed(self):
        assert normalize_location("file:///tmp/archives///") == "file:///tmp/archives"

    def test_redundant_segments_are_collapsed(self):
        assert normalize_location("file:///tmp//a/./b/../c") == "file:///tmp/a/c"

    def test_scheme_and_host_are_lower_cased(self):
        assert (
            normalize_location("HTTP://Archive.Example.COM/jobs/")
            == "http://archive.example.com/jobs"
        )

    def test_surrounding_whitespace_is_ignored(self):
        assert normalize_location("  https://host/a  ") == "https://host/a"

    def test_bare_relative_path_resolves_to_file_uri(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        expected = (tmp_path / "archives").resolve().as_uri()
        assert normalize_location("archives/") == expected

    def test_bare_absolute_path_resolves_to_file_uri(self, tmp_path):
        expected = tmp_path.resolve().as_uri()
        assert normalize_location(str(tmp_path)) == expected

    def test_localhost_file_uri_is_accepted(self):
        assert normalize_location("file://localhost/srv/a") == "file:///srv/a"

    @pytest.mark.parametrize(
        "raw",
        [
            "",
            "   ",
            "http:///no-host",
            "file://remote-host/archives",
            "file:relative/path",
            "https://host/archives?page=2",
            "https://host/archives#top",
        ],
    )
    def test_unusable_locations_are_rejected(self, raw):
        with pytest.raises(ValueError):
            normalize_location(raw)


# =============================================================================
# Test: Registry Construction
# =============================================================================


@pytest.mark.unit
class TestRegistryBuild:

    def test_valid_locations_are_kept_in_order(self):
        first, second = InMemoryStore(), InMemoryStore()
        resolver = StubResolver({"mem://a": first, "mem://b": second})

        registry = RefreshLocationRegistry.build("mem://a, mem://b/", resolver)

        assert [location.uri for location in registry] == ["mem://a", "mem://b"]
        assert registry.locations[0].store is first
        assert registry.locations[1].store is second
        assert len(registry) == 2

    def test_invalid_entries_are_dropped(self, caplog):
        resolver = StubResolver({"mem://ok": InMemoryStore()})

        registry = RefreshLocationRegistry.build(
            "mem://ok,http:///broken,mem://unknown", resolver
        )

        assert [location.uri for location in registry] == ["mem://ok"]
        assert "http:///broken" in caplog.text
        assert "mem://unknown" in caplog.text

    def test_duplicates_and_blank_entries_are_ignored(self):
        resolver = StubResolver({"mem://a": InMemoryStore()})

        registry = RefreshLocationRegistry.build("mem://a,, mem://a/ ,", resolver)

        assert len(registry) == 1

    def test_custom_delimiter(self):
        resolver = StubResolver(
            {"mem://a": InMemoryStore(), "mem://b": InMemoryStore()}
        )

        registry = RefreshLocationRegistry.build("mem://a;mem://b", resolver, ";")

        assert len(registry) == 2

    def test_all_invalid_raises_configuration_error(self):
        with pytest.raises(ConfigurationError, match="any of the configured"):
            RefreshLocationRegistry.build("mem://x,http:///y", StubResolver())

    @pytest.mark.parametrize("raw", ["", "  ", None])
    def test_unconfigured_raises_configuration_error(self, raw):
        with pytest.raises(ConfigurationError, match="No refresh locations"):
            RefreshLocationRegistry.build(raw, StubResolver())

    def test_registry_is_immutable(self):
        resolver = StubResolver({"mem://a": InMemoryStore()})
        registry = RefreshLocationRegistry.build("mem://a", resolver)

        assert isinstance(registry.locations, tuple)
