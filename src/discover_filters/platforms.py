"""Platform directory for the platform picker.

Only ACTIVE platforms are offered. Without a search query the picker
shows the popular platforms first, in a fixed popularity order.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional

logger = logging.getLogger(__name__)

POPULAR_PLATFORMS = ("instagram", "tiktok", "youtube", "twitter", "facebook")
ACTIVE_STATUS = "ACTIVE"


@dataclass(frozen=True)
class PlatformInfo:
    """A social platform creators can be discovered on."""

    id: str
    name: str
    work_platform_id: str
    status: str = ACTIVE_STATUS
    description: Optional[str] = None
    category: str = ""
    logo_url: str = ""

    @property
    def is_active(self) -> bool:
        return self.status.upper() == ACTIVE_STATUS

    @property
    def key(self) -> str:
        """Constraint profile key, e.g. ``"tiktok"`` for "TikTok Business"."""
        lowered = self.name.lower()
        for popular in POPULAR_PLATFORMS:
            if popular in lowered:
                return popular
        return lowered.strip()

    @property
    def popularity(self) -> Optional[int]:
        lowered = self.name.lower()
        for rank, popular in enumerate(POPULAR_PLATFORMS):
            if popular in lowered:
                return rank
        return None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PlatformInfo":
        return cls(
            id=str(data["id"]),
            name=data["name"],
            work_platform_id=str(data.get("work_platform_id") or data["id"]),
            status=data.get("status", ACTIVE_STATUS),
            description=data.get("description"),
            category=data.get("category", ""),
            logo_url=data.get("logo_url", ""),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "work_platform_id": self.work_platform_id,
            "status": self.status,
            "description": self.description,
            "category": self.category,
            "logo_url": self.logo_url,
        }


class PlatformDirectory:
    """Lookup over the platforms the backend knows about."""

    def __init__(self, platforms: Iterable[PlatformInfo] = ()):
        self._platforms = list(platforms)

    def __len__(self) -> int:
        return len(self._platforms)

    def replace(self, platforms: Iterable[PlatformInfo]) -> None:
        self._platforms = list(platforms)
        logger.debug("Platform directory holds %d platforms", len(self._platforms))

    def active(self) -> list[PlatformInfo]:
        return [p for p in self._platforms if p.is_active]

    def popular(self) -> list[PlatformInfo]:
        """Active popular platforms in popularity order."""
        ranked = [p for p in self.active() if p.popularity is not None]
        return sorted(ranked, key=lambda p: p.popularity)

    def others(self) -> list[PlatformInfo]:
        popular_ids = {p.id for p in self.popular()}
        return [p for p in self.active() if p.id not in popular_ids]

    def search(self, query: str = "") -> list[PlatformInfo]:
        """Popular platforms for an empty query, else matches on name or description."""
        needle = (query or "").strip().lower()
        if not needle:
            return self.popular()
        return [
            p for p in self.active()
            if needle in p.name.lower() or needle in (p.description or "").lower()
        ]

    def get(self, platform_id: str) -> Optional[PlatformInfo]:
        for platform in self._platforms:
            if platform_id in (platform.id, platform.work_platform_id):
                return platform
        return None
