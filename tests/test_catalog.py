from __future__ import annotations

import pytest

from streamrelay.relay import DEFAULT_CATALOG, BitrateRule, Platform


def test_default_catalog_order_and_urls() -> None:
    assert DEFAULT_CATALOG.platforms() == (Platform.TWITCH, Platform.YOUTUBE, Platform.KICK, Platform.CUSTOM)
    assert DEFAULT_CATALOG.get("twitch").ingest_url == "rtmp://live.twitch.tv/app/"
    assert DEFAULT_CATALOG.get(Platform.YOUTUBE).ingest_url == "rtmp://a.rtmp.youtube.com/live2/"
    assert DEFAULT_CATALOG.get("KICK").ingest_url == "rtmp://ingest.kick.com/live/"
    assert DEFAULT_CATALOG.get(Platform.CUSTOM).requires_ingest_url is True


def test_bitrate_rules() -> None:
    assert BitrateRule.identity().apply(6000) == 6000
    assert BitrateRule.scale(2).apply(6000) == 12000
    assert BitrateRule.offset(4000).apply(6000) == 10000
    assert BitrateRule.scale(1.5).describe() == "x1.5"
    assert BitrateRule.offset(4000).describe() == "+4000 kbps"
    with pytest.raises(ValueError):
        BitrateRule("bogus", 1).apply(6000)


def test_overrides_return_new_catalog() -> None:
    catalog = DEFAULT_CATALOG.with_overrides(
        rules={"kick": BitrateRule.offset(1000)},
        ingest_urls={"twitch": "rtmp://fra.contribute.live-video.net/app/"},
    )

    assert catalog.get("kick").bitrate_rule.apply(6000) == 7000
    assert catalog.get("twitch").ingest_url.startswith("rtmp://fra.")
    assert DEFAULT_CATALOG.get("kick").bitrate_rule.apply(6000) == 10000
    assert len(catalog) == len(DEFAULT_CATALOG)


def test_membership() -> None:
    assert "youtube" in DEFAULT_CATALOG
    assert "myspace" not in DEFAULT_CATALOG
    with pytest.raises(ValueError):
        Platform.parse("myspace")
