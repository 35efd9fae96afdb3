"""Small text helpers shared by transports."""

from __future__ import annotations

from glados.constants import MAX_DISCORD_MESSAGE_LENGTH


def split_text_chunks(content: str, max_length: int = MAX_DISCORD_MESSAGE_LENGTH) -> list[str]:
    """Split text into chunks no longer than ``max_length``.

    Prefers newline boundaries, then spaces, and hard-splits words that are
    longer than a whole chunk.
    """
    if max_length <= 0:
        raise ValueError("max_length must be positive")
    if len(content) <= max_length:
        return [content]

    chunks: list[str] = []
    remaining = content
    while len(remaining) > max_length:
        window = remaining[:max_length]
        split_at = window.rfind("\n")
        if split_at <= 0:
            split_at = window.rfind(" ")
        if split_at <= 0:
            split_at = max_length
        chunks.append(remaining[:split_at].rstrip())
        remaining = remaining[split_at:].lstrip("\n ")
    if remaining:
        chunks.append(remaining)
    return [chunk for chunk in chunks if chunk]
