"""
Tests for m365pkg.channels module.

Tests channel version lookup including:
- Static mapping
- Office releases feed parsing and caching
- Feed errors
"""

from __future__ import annotations

import pytest
import requests_mock

from m365pkg.channels import (
    OFFICE_RELEASES_URL,
    OfficeReleasesLookup,
    StaticVersionLookup,
)
from m365pkg.exceptions import ConfigError, NetworkError

pytestmark = pytest.mark.unit

FEED = [
    {
        "channelId": "Current",
        "latestVersion": "2411",
        "latestBuild": "18227.20162",
    },
    {
        "channelId": "MonthlyEnterprise",
        "latestVersion": "2409",
        "latestBuild": "16.0.17928.20216",
    },
    {"channelId": "SemiAnnual", "latestVersion": "16.0.17328.20612"},
]


class TestStaticVersionLookup:
    def test_known_channel(self):
        lookup = StaticVersionLookup({"Current": "16.0.1.2"})
        assert lookup.current_version("Current") == "16.0.1.2"

    def test_unknown_channel(self):
        lookup = StaticVersionLookup({"Current": "16.0.1.2"})
        with pytest.raises(ConfigError, match="SemiAnnual"):
            lookup.current_version("SemiAnnual")


class TestOfficeReleasesLookup:
    def test_build_gets_product_prefix(self):
        with requests_mock.Mocker() as m:
            m.get(OFFICE_RELEASES_URL, json=FEED)
            lookup = OfficeReleasesLookup()
            assert lookup.current_version("Current") == "16.0.18227.20162"

    def test_prefixed_build_kept(self):
        with requests_mock.Mocker() as m:
            m.get(OFFICE_RELEASES_URL, json=FEED)
            lookup = OfficeReleasesLookup()
            assert lookup.current_version("monthlyenterprise") == "16.0.17928.20216"

    def test_latest_version_fallback(self):
        with requests_mock.Mocker() as m:
            m.get(OFFICE_RELEASES_URL, json=FEED)
            assert (
                OfficeReleasesLookup().current_version("SemiAnnual")
                == "16.0.17328.20612"
            )

    def test_feed_fetched_once(self):
        with requests_mock.Mocker() as m:
            m.get(OFFICE_RELEASES_URL, json=FEED)
            lookup = OfficeReleasesLookup()
            lookup.current_version("Current")
            lookup.current_version("MonthlyEnterprise")
            assert m.call_count == 1

    def test_unknown_channel(self):
        with requests_mock.Mocker() as m:
            m.get(OFFICE_RELEASES_URL, json=FEED)
            with pytest.raises(NetworkError, match="not found"):
                OfficeReleasesLookup().current_version("BetaChannel")

    def test_http_error(self):
        with requests_mock.Mocker() as m:
            m.get(OFFICE_RELEASES_URL, status_code=403)
            with pytest.raises(NetworkError, match="Failed to fetch"):
                OfficeReleasesLookup().current_version("Current")

    def test_invalid_json(self):
        with requests_mock.Mocker() as m:
            m.get(OFFICE_RELEASES_URL, text="<html>")
            with pytest.raises(NetworkError, match="not valid JSON"):
                OfficeReleasesLookup().current_version("Current")

    def test_unexpected_payload(self):
        with requests_mock.Mocker() as m:
            m.get(OFFICE_RELEASES_URL, json={"value": []})
            with pytest.raises(NetworkError, match="unexpected payload"):
                OfficeReleasesLookup().current_version("Current")
