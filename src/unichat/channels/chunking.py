"""Splitting of oversized messages into platform-deliverable chunks."""

from collections.abc import Iterator


def iter_chunks(text: str, limit: int) -> Iterator[tuple[str, str]]:
    """Yield ``(chunk, separator)`` pairs covering ``text``.

    Each chunk is the longest prefix of the remainder that fits in ``limit``,
    cut at the last newline inside the window when there is one, otherwise
    exactly at ``limit``. The newline a cut lands on is dropped from the
    output and reported as the separator, so
    ``"".join(chunk + sep for chunk, sep in iter_chunks(text, limit)) == text``.

    Args:
        text: Text to split
        limit: Maximum characters per chunk

    Raises:
        ValueError: If limit is not positive
    """
    if limit <= 0:
        raise ValueError(f"limit must be positive, got {limit}")

    remaining = text
    cut_made = False
    while len(remaining) > limit:
        # A newline at index `limit` still yields a prefix of exactly `limit`
        cut = remaining.rfind("\n", 0, limit + 1)
        if cut <= 0:
            cut = limit
        chunk, remaining = remaining[:cut], remaining[cut:]
        cut_made = True
        if remaining.startswith("\n"):
            remaining = remaining[1:]
            yield chunk, "\n"
        else:
            yield chunk, ""

    if remaining or not cut_made:
        yield remaining, ""


def split_message(text: str, limit: int) -> list[str]:
    """Split text into chunks of at most ``limit`` characters.

    Prefers newline boundaries; text that already fits is returned as a single
    chunk unchanged.

    Args:
        text: Text to split
        limit: Maximum characters per chunk

    Returns:
        Ordered list of chunks
    """
    if len(text) <= limit:
        return [text]
    return [chunk for chunk, _ in iter_chunks(text, limit)]


def slice_message(text: str, limit: int) -> list[str]:
    """Split text into fixed-size slices with no newline preference.

    Used for platforms with very high limits where a line-aware cut buys
    nothing.

    Args:
        text: Text to split
        limit: Characters per slice

    Returns:
        Ordered list of slices
    """
    if limit <= 0:
        raise ValueError(f"limit must be positive, got {limit}")
    if len(text) <= limit:
        return [text]
    return [text[i : i + limit] for i in range(0, len(text), limit)]
