"""
RSS ingestion: fetch, normalize, classify, deduplicate, insert.
"""
from news_terminal.ingest.feed_client import ParsedFeed, RSSFeedClient, parse_feed
from news_terminal.ingest.normalizer import FeedEntry, clean_text, content_hash
from news_terminal.ingest.pipeline import IngestionPipeline, IngestionReport, SourceResult

__all__ = [
    "FeedEntry",
    "IngestionPipeline",
    "IngestionReport",
    "ParsedFeed",
    "RSSFeedClient",
    "SourceResult",
    "clean_text",
    "content_hash",
    "parse_feed",
]
