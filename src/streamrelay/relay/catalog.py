"""Static knowledge about the streaming platforms the relay can push to."""
from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Dict, Iterator, Mapping, Optional, Tuple


class Platform(str, Enum):
    """Known destinations, in catalog order."""

    TWITCH = "twitch"
    YOUTUBE = "youtube"
    KICK = "kick"
    CUSTOM = "custom"

    @classmethod
    def parse(cls, value: "Platform | str") -> "Platform":
        if isinstance(value, cls):
            return value
        return cls(str(value).strip().lower())


@dataclass(frozen=True)
class BitrateRule:
    """How a platform derives its target bitrate from the base bitrate.

    The multipliers below mirror the historic per-platform arithmetic. Whether
    they are meaningful bandwidth policy is unsettled, so they live here as
    overridable catalog data instead of being inlined at the call site.
    """

    kind: str = "identity"
    amount: float = 0

    @classmethod
    def identity(cls) -> "BitrateRule":
        return cls("identity", 0)

    @classmethod
    def scale(cls, factor: float) -> "BitrateRule":
        return cls("scale", factor)

    @classmethod
    def offset(cls, increment: int) -> "BitrateRule":
        return cls("offset", increment)

    def apply(self, base_kbps: int) -> int:
        if self.kind == "identity":
            return int(base_kbps)
        if self.kind == "scale":
            return int(round(base_kbps * self.amount))
        if self.kind == "offset":
            return int(base_kbps + self.amount)
        raise ValueError(f"Unknown bitrate rule kind {self.kind!r}")

    def describe(self) -> str:
        if self.kind == "scale":
            return f"x{self.amount:g}"
        if self.kind == "offset":
            return f"{self.amount:+g} kbps"
        return "base"


@dataclass(frozen=True)
class PlatformTarget:
    """Immutable catalog entry for one destination."""

    platform: Platform
    display_name: str
    ingest_url: str
    bitrate_rule: BitrateRule = BitrateRule.identity()
    color: str = "#ffffff"

    @property
    def identifier(self) -> str:
        return self.platform.value

    @property
    def requires_ingest_url(self) -> bool:
        return not self.ingest_url


class PlatformCatalog:
    """Ordered, read-only collection of :class:`PlatformTarget` entries."""

    def __init__(self, targets: Tuple[PlatformTarget, ...]) -> None:
        self._targets = tuple(targets)
        self._by_platform: Dict[Platform, PlatformTarget] = {target.platform: target for target in self._targets}

    def __iter__(self) -> Iterator[PlatformTarget]:
        return iter(self._targets)

    def __len__(self) -> int:
        return len(self._targets)

    def __contains__(self, platform: object) -> bool:
        try:
            return Platform.parse(platform) in self._by_platform  # type: ignore[arg-type]
        except ValueError:
            return False

    def get(self, platform: Platform | str) -> PlatformTarget:
        return self._by_platform[Platform.parse(platform)]

    def platforms(self) -> Tuple[Platform, ...]:
        return tuple(target.platform for target in self._targets)

    def with_rule(self, platform: Platform | str, rule: BitrateRule) -> "PlatformCatalog":
        """Return a copy of the catalog with ``platform`` using ``rule``."""

        return self._replace(platform, bitrate_rule=rule)

    def with_ingest_url(self, platform: Platform | str, ingest_url: str) -> "PlatformCatalog":
        return self._replace(platform, ingest_url=ingest_url)

    def with_overrides(
        self,
        *,
        rules: Optional[Mapping[str, BitrateRule]] = None,
        ingest_urls: Optional[Mapping[str, str]] = None,
    ) -> "PlatformCatalog":
        catalog = self
        for key, rule in (rules or {}).items():
            catalog = catalog.with_rule(key, rule)
        for key, url in (ingest_urls or {}).items():
            catalog = catalog.with_ingest_url(key, url)
        return catalog

    def _replace(self, platform: Platform | str, **changes) -> "PlatformCatalog":
        target = Platform.parse(platform)
        if target not in self._by_platform:
            raise KeyError(target)
        return PlatformCatalog(
            tuple(replace(entry, **changes) if entry.platform is target else entry for entry in self._targets)
        )


DEFAULT_CATALOG = PlatformCatalog(
    (
        PlatformTarget(
            platform=Platform.TWITCH,
            display_name="Twitch",
            ingest_url="rtmp://live.twitch.tv/app/",
            bitrate_rule=BitrateRule.identity(),
            color="#9146ff",
        ),
        PlatformTarget(
            platform=Platform.YOUTUBE,
            display_name="YouTube",
            ingest_url="rtmp://a.rtmp.youtube.com/live2/",
            bitrate_rule=BitrateRule.scale(2),
            color="#ff0000",
        ),
        PlatformTarget(
            platform=Platform.KICK,
            display_name="Kick",
            ingest_url="rtmp://ingest.kick.com/live/",
            bitrate_rule=BitrateRule.offset(4000),
            color="#53ff1a",
        ),
        PlatformTarget(
            platform=Platform.CUSTOM,
            display_name="Custom RTMP",
            ingest_url="",
            bitrate_rule=BitrateRule.identity(),
        ),
    )
)


__all__ = ["BitrateRule", "DEFAULT_CATALOG", "Platform", "PlatformCatalog", "PlatformTarget"]
