"""Text utilities for log-safe string handling."""


def safe_truncate(text: str, max_chars: int, suffix: str = "...") -> str:
    """Truncate text for log output, preferring a word boundary.

    Args:
        text: Text to truncate
        max_chars: Maximum characters (excluding suffix)
        suffix: Suffix to append if truncated (default "...")

    Returns:
        Truncated text with suffix if needed
    """
    if not text or len(text) <= max_chars:
        return text

    truncated = text[:max_chars]

    # Look back up to 20 characters for a cleaner break point
    break_chars = {' ', '\n', '\t', ',', '.', '!', '?', ';', ':', '|'}
    for i in range(min(20, max_chars - 1), 0, -1):
        if truncated[-i] in break_chars:
            truncated = truncated[:-(i - 1)].rstrip() if i > 1 else truncated.rstrip()
            break

    return truncated + suffix


def one_line(text: str) -> str:
    """Collapse line breaks so multi-line payloads log on a single line."""
    return text.replace("\r", "").replace("\n", "\\n")
