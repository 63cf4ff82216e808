import re
from typing import Iterable


def _normalize_identifier(value: str, fallback: str) -> str:
    cleaned = re.sub(r"[^a-zA-Z0-9_$]", "", value)
    if not cleaned:
        return fallback
    if cleaned[0].isdigit():
        return f"{fallback}{cleaned}"
    return cleaned


def singularize(name: str) -> str:
    """English-ish singular of a collection name (``entries`` -> ``entry``)."""
    lower = name.lower()
    if lower.endswith("ies") and len(name) > 3:
        return name[:-3] + "y"
    if lower.endswith(("sses", "xes", "ches", "shes")):
        return name[:-2]
    if lower.endswith("s") and not lower.endswith("ss") and len(name) > 1:
        return name[:-1]
    return name


def field_name(collection_name: str, taken: Iterable[str] = ()) -> str:
    """Record field that carries one element of ``collection_name``."""
    base = _normalize_identifier(singularize(collection_name), "value")
    if base == collection_name:
        base = f"{base}Item"
    return _unique(base, taken)


def suggest_group_name(anchor_name: str, existing_names: Iterable[str] = ()) -> str:
    """``<singular(anchor)>Records``, numbered on collision with a visible name."""
    base = _normalize_identifier(f"{singularize(anchor_name)}Records", "merged")
    return _unique(base, existing_names)


def _unique(base: str, existing_names: Iterable[str]) -> str:
    name = base
    counter = 2
    existing = set(existing_names)
    while name in existing:
        name = f"{base}{counter}"
        counter += 1
    return name
