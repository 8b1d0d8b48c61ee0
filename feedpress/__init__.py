"""FeedPress: feed ingestion, article generation and WordPress publishing."""
