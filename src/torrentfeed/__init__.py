from .dom import TreeBuildError, TreeOptions, build_tree, find_by_tag, text_of
from .main import extract_media, parse_date, parse_feed
from .models import Feed, FeedItem, MediaInfo
from .sites import SITES, Site, search, search_url

__all__ = [
    "Feed",
    "FeedItem",
    "MediaInfo",
    "SITES",
    "Site",
    "TreeBuildError",
    "TreeOptions",
    "build_tree",
    "extract_media",
    "find_by_tag",
    "parse_date",
    "parse_feed",
    "search",
    "search_url",
    "text_of",
]
