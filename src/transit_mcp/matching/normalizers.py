import unicodedata
from functools import lru_cache

# Checked in order; the first separator found (not at position 0) splits the query.
CROSS_STREET_SEPARATORS: tuple[str, ...] = (" and ", " & ", " at ", "/", " n ", " near ")

# Realtime direction abbreviations -> display text
DIRECTION_NAMES: dict[str, str] = {
    "NB": "Northbound",
    "SB": "Southbound",
    "EB": "Eastbound",
    "WB": "Westbound",
}

# Trailing compass letter of stop_desc ("Nearside S", "Farside N")
STOP_SIDE_NAMES: dict[str, str] = {
    "N": "Northbound side",
    "S": "Southbound side",
    "E": "Eastbound side",
    "W": "Westbound side",
}

# Street-name abbreviations expanded before fuzzy scoring
ABBREVIATIONS: dict[str, str] = {
    "ave": "avenue",
    "av": "avenue",
    "blvd": "boulevard",
    "st": "street",
    "pkwy": "parkway",
    "hwy": "highway",
    "dr": "drive",
    "rd": "road",
    "ln": "lane",
    "pl": "place",
    "ctr": "center",
    "sta": "station",
    "tc": "transit center",
}


@lru_cache(maxsize=4096)
def remove_accents(text: str) -> str:
    """Remove accents from text.

    Example: "Hôtel" -> "Hotel"
    """
    # Normalize to NFD (decomposes accented characters)
    normalized = unicodedata.normalize("NFD", text)
    # Remove combining diacritical marks
    return "".join(c for c in normalized if unicodedata.category(c) != "Mn")


@lru_cache(maxsize=4096)
def normalize_text(text: str) -> str:
    """Normalize text for fuzzy matching.

    - Converts to lowercase
    - Removes accents
    - Treats "&", "/" and "@" as word breaks
    - Expands street abbreviations
    - Normalizes whitespace

    Example: "Hennepin Ave & 5th St" -> "hennepin avenue 5th street"
    """
    result = remove_accents(text.lower().strip())
    for char in "&/@.,":
        result = result.replace(char, " ")
    tokens = [ABBREVIATIONS.get(token, token) for token in result.split()]
    return " ".join(tokens)


def split_cross_street(query: str) -> list[str]:
    """Split a cross-street query into its two street names.

    Returns two lowercase parts when a separator is found, otherwise the whole
    lowercased query as a single part.

    Examples:
        "Lake & Lyndale" -> ["lake", "lyndale"]
        "Franklin Ave/Chicago" -> ["franklin ave", "chicago"]
        "Uptown" -> ["uptown"]
    """
    q = query.strip().lower()
    for sep in CROSS_STREET_SEPARATORS:
        idx = q.find(sep)
        if idx > 0:
            first = q[:idx].strip()
            second = q[idx + len(sep) :].strip()
            if first and second:
                return [first, second]
            break
    return [q]


def expand_direction_text(abbr: str) -> str:
    """Expand a realtime direction abbreviation ("NB" -> "Northbound")."""
    return DIRECTION_NAMES.get(abbr, abbr)


def format_stop_desc(desc: str | None) -> str:
    """Turn a GTFS stop_desc into a side-of-street label.

    "Nearside S" -> "Southbound side". Values without a trailing compass
    letter are returned trimmed but otherwise unchanged.
    """
    desc = (desc or "").strip()
    if not desc:
        return ""
    direction = desc.split()[-1]
    return STOP_SIDE_NAMES.get(direction, desc)
