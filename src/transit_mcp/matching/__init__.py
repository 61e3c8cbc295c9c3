"""Text normalization for stop search and realtime direction labels."""

from transit_mcp.matching.normalizers import (
    expand_direction_text,
    format_stop_desc,
    normalize_text,
    remove_accents,
    split_cross_street,
)

__all__ = [
    "expand_direction_text",
    "format_stop_desc",
    "normalize_text",
    "remove_accents",
    "split_cross_street",
]
