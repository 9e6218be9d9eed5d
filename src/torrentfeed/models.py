from __future__ import annotations

import datetime
from dataclasses import dataclass
from typing import Any, Literal, Optional

FeedType = Literal["atom", "rss", "rdf"]


def _drop_none_values(mapping: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in mapping.items() if value is not None}


def _isoformat(value: Optional[datetime.datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


@dataclass(frozen=True)
class MediaInfo:
    """One `media:content` descriptor of an item.

    `medium` (image, audio, video, document, executable) and `expression`
    (full, sample, nonstop) are copied as found, unknown values included.
    """

    medium: Optional[str] = None
    is_default: bool = False
    url: Optional[str] = None
    type: Optional[str] = None
    lang: Optional[str] = None
    file_size: Optional[int] = None
    bitrate: Optional[int] = None
    framerate: Optional[int] = None
    samplingrate: Optional[int] = None
    channels: Optional[int] = None
    duration: Optional[int] = None
    height: Optional[int] = None
    width: Optional[int] = None
    expression: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return _drop_none_values(
            {
                "medium": self.medium,
                "isDefault": self.is_default,
                "url": self.url,
                "type": self.type,
                "lang": self.lang,
                "fileSize": self.file_size,
                "bitrate": self.bitrate,
                "framerate": self.framerate,
                "samplingrate": self.samplingrate,
                "channels": self.channels,
                "duration": self.duration,
                "height": self.height,
                "width": self.width,
                "expression": self.expression,
            }
        )


@dataclass(frozen=True)
class FeedItem:
    id: Optional[str] = None
    title: Optional[str] = None
    link: Optional[str] = None
    description: Optional[str] = None
    pub_date: Optional[datetime.datetime] = None
    media: tuple[MediaInfo, ...] = ()
    # RSS only: the raw guid, and the enclosure URL of the .torrent file.
    guid: Optional[str] = None
    torrent: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready mapping; absent fields are left out, `media` is always present."""
        return _drop_none_values(
            {
                "id": self.id,
                "title": self.title,
                "link": self.link,
                "description": self.description,
                "pubDate": _isoformat(self.pub_date),
                "media": [media.to_dict() for media in self.media],
                "guid": self.guid,
                "torrent": self.torrent,
            }
        )


@dataclass(frozen=True)
class Feed:
    type: FeedType
    id: Optional[str] = None
    title: Optional[str] = None
    link: Optional[str] = None
    description: Optional[str] = None
    updated: Optional[datetime.datetime] = None
    author: Optional[str] = None
    items: tuple[FeedItem, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return _drop_none_values(
            {
                "type": self.type,
                "id": self.id,
                "title": self.title,
                "link": self.link,
                "description": self.description,
                "updated": _isoformat(self.updated),
                "author": self.author,
                "items": [item.to_dict() for item in self.items],
            }
        )
