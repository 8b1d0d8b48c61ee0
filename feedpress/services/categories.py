# feedpress/services/categories.py
"""
Category resolution for publishing.

Priority is fixed: the source's default category, then the site's default
category, then nothing.
"""


def is_valid_category(category) -> bool:
    """A category is usable when it is a non-blank string."""
    return isinstance(category, str) and bool(category.strip())


def determine_article_categories(
    source_category: str | None,
    site_category: str | None,
) -> list[str]:
    """Categories for a post: [source] if set, else [site] if set, else []."""
    if is_valid_category(source_category):
        return [source_category.strip()]
    if is_valid_category(site_category):
        return [site_category.strip()]
    return []


def get_category_source(source_category: str | None, site_category: str | None) -> str:
    """Human-readable origin of the resolved category, for logs."""
    if is_valid_category(source_category):
        return f"source ({source_category.strip()})"
    if is_valid_category(site_category):
        return f"wordpress-site ({site_category.strip()})"
    return "none"
