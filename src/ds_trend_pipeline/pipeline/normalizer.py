import re

MARKETPLACE_TOKENS = {"amazon", "walmart", "ebay", "tiktok", "etsy", "aliexpress", "temu", "shein"}

_MARKETPLACE_RE = re.compile(
    r"\b(" + "|".join(sorted(MARKETPLACE_TOKENS)) + r")\b", re.IGNORECASE
)


def normalize_term(term: str) -> str:
    """Normalize a signal key (keyword or hashtag) into a search term."""
    term = term.lower().strip().lstrip("#")
    # Hashtags use underscores as word breaks
    term = term.replace("_", " ")
    term = re.sub(r"[^\w\s-]", "", term)
    term = re.sub(r"\s+", " ", term)
    tokens = [t for t in term.split() if t not in MARKETPLACE_TOKENS]
    return " ".join(tokens).strip()


def strip_marketplace_names(text: str) -> str:
    return _MARKETPLACE_RE.sub("", text)
