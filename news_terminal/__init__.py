"""
news terminal: RSS ingestion, tag classification and single-owner pane
routing for a live multi-pane news feed.
"""
