import re
import unicodedata


def slugify(value: str) -> str:
    """ASCII-fold, lowercase, and join word runs with single hyphens."""
    if not value:
        return ""

    value = unicodedata.normalize("NFKD", value)
    value = value.encode("ascii", "ignore").decode("ascii").lower()
    value = re.sub(r"[^a-z0-9]+", "-", value)

    return value.strip("-")
