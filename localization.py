"""Resolution of bilingual `{en, ta}` values to a single language."""
from typing import Any, Dict, Iterable, Optional

LANGUAGES = ("en", "ta")
DEFAULT_LANGUAGE = "en"


def is_bilingual(value: Any) -> bool:
    return isinstance(value, dict) and bool(value) and set(value).issubset(LANGUAGES)


def resolve(value: Any, lang: str) -> Any:
    """Pick `lang` from a bilingual value, falling back to English.

    Non-bilingual values are returned untouched.
    """
    if not is_bilingual(value):
        return value
    return value.get(lang) or value.get(DEFAULT_LANGUAGE) or ""


def localize(doc: Dict[str, Any], fields: Iterable[str], lang: Optional[str]) -> Dict[str, Any]:
    """Resolve the named bilingual fields of `doc` in place.

    With no `lang` the document keeps its full bilingual objects.
    """
    if not lang:
        return doc
    for field in fields:
        if field in doc:
            doc[field] = resolve(doc[field], lang)
    return doc
