# feedpress/constants.py
"""
Centralized magic constants organized by domain.

All hardcoded numbers/strings used throughout the codebase should be
defined here with documentation explaining their purpose.
"""


class IngestionDefaults:
    """Feed polling defaults, overridable per source configuration."""

    FETCH_INTERVAL_SECONDS = 60         # Minimum gap between two fetches of one source
    MAX_ITEMS_PER_SOURCE = 20           # Entries taken from the head of a feed
    FEED_FETCH_TIMEOUT_SECONDS = 30     # RSS feed fetch timeout
    UNTITLED = "Untitled"               # Title for entries without one
    USER_AGENT = "FeedPress-Bot/1.0 (+https://feedpress.dev)"


class GenerationDefaults:
    """Generation monitor defaults."""

    LIST_LIMIT = 50                     # Default page size for monitor listing
    LIST_MAX_LIMIT = 200
    CLEANUP_OLDER_THAN_DAYS = 7         # Default age for monitor cleanup
    CLEANUP_STATUS = "completed"        # Default status removed by cleanup
    TITLE_LOG_PREVIEW_CHARS = 50        # Title prefix used in log lines
    RESPONSE_VERSION = 2                # Canonical flat generation response shape


class PublishDefaults:
    """Auto-publish and publication defaults."""

    BATCH_SIZE = 10                     # Articles per scheduler run
    INTER_ITEM_DELAY_SECONDS = 2.0      # Pause between CMS publishes
    MAX_RETRIES = 3                     # Publication retry budget
    EXCERPT_MAX_CHARS = 150             # Excerpt is the title truncated to this
    DEFAULT_POST_STATUS = "publish"     # WordPress post status when site has none
    SCHEDULER_LOCK_NAME = "auto_publish"


class CMSDefaults:
    """WordPress REST paths and error handling."""

    POSTS_PATH = "/wp-json/wp/v2/posts"
    MEDIA_PATH = "/wp-json/wp/v2/media"
    INDEX_PATH = "/wp-json"
    RETRYABLE_STATUS_CODES = {408, 429}  # Plus every 5xx
    ERROR_BODY_PREVIEW_CHARS = 300      # Response text kept in error messages
    CONNECTION_TEST_CACHE_SECONDS = 60  # TTL for cached connection tests
    IMAGE_DOWNLOAD_TIMEOUT_SECONDS = 30


class AutomationDefaults:
    """Automation rule defaults."""

    DEFAULT_RULE_NAME = "Default Auto Generation"
    DEFAULT_MAX_ITEMS = 10              # Items handed to generate_articles
