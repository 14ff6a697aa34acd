"""Keyword matching and exclusion rules for Discord messages.

All checks are plain, case-sensitive substring tests with no tokenization.
"""


def matches(content, keywords):
    """True if any keyword occurs in the content."""
    return any(keyword in content for keyword in keywords)


def is_excluded(content, exclude_keywords):
    """True if any exclusion keyword occurs in the content."""
    return any(keyword in content for keyword in exclude_keywords)


def is_excluded_author(username, user_id, exclude_ids, exclude_usernames):
    """True if the author is excluded by id or by name.

    Names match in both directions so that webhook posters whose display name
    carries a prefix or suffix are still caught.
    """
    if user_id in exclude_ids:
        return True
    if not username:
        return False
    return any(
        name in username or username in name
        for name in exclude_usernames if name
    )


def exclusion_reason(message, exclude_ids, exclude_usernames, exclude_keywords):
    """Return why a matched message is excluded, or None.

    Checks run in order author id, author name, content; the first hit wins.
    """
    author = message.get("author") or {}
    user_id = author.get("id")
    username = author.get("username") or ""

    if user_id in exclude_ids:
        return "user_id"
    if is_excluded_author(username, None, (), exclude_usernames):
        return "username"
    if is_excluded(message.get("content") or "", exclude_keywords):
        return "keyword"
    return None
