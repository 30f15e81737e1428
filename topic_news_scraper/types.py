from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional


@dataclass(frozen=True)
class Article:
    title: str
    google_link: str
    source: str
    time: str
    source_link: Optional[str] = None
    date_time: Optional[str] = None
    author: str = "Unknown"
    image_url: Optional[str] = None

    # populated by the aggregator
    formatted_time: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        """JSON-friendly record using the aggregator's public field names."""

        return {
            "title": self.title,
            "sourceLink": self.source_link,
            "googleLink": self.google_link,
            "source": self.source,
            "dateTime": self.date_time,
            "time": self.time,
            "author": self.author,
            "imageUrl": self.image_url,
            "formattedTime": self.formatted_time,
        }
