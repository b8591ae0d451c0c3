"""
Row Identity Resolution.

Rows arrive from heterogeneous sources (CSV exports, enrichment payloads)
so their identity is derived from the first non-empty field of a fixed
precedence list. Attribute paths are looked up as flattened keys first
("person.linkedin_url") and then as nested mappings.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional, Sequence

# Precedence order for a person's identity
PERSON_IDENTITY_FIELDS: Sequence[str] = (
    "linkedin_url",
    "person.linkedin_url",
    "id",
)

# Precedence order for an organization's identity
ORGANIZATION_IDENTITY_FIELDS: Sequence[str] = (
    "organization.id",
    "organization_id",
    "apollo_org_id",
)

_MISSING = object()


def lookup_path(attributes: Mapping[str, Any], path: str, default: Any = None) -> Any:
    """
    Look up a dotted attribute path.

    The flattened key wins over the nested structure when both exist.

    Args:
        attributes: Row attribute mapping
        path: Dotted path, e.g. "organization.id"
        default: Value returned when the path is absent or None

    Returns:
        The stored value or default
    """
    value = attributes.get(path, _MISSING)
    if value is not _MISSING and value is not None:
        return value

    current: Any = attributes
    for part in path.split("."):
        if not isinstance(current, Mapping) or part not in current:
            return default
        current = current[part]

    return default if current is None else current


def _clean(value: Any) -> Optional[str]:
    if value is None or isinstance(value, (dict, list)):
        return None
    text = str(value).strip()
    return text or None


def _first_present(attributes: Mapping[str, Any], paths: Sequence[str]) -> Optional[str]:
    for path in paths:
        value = _clean(lookup_path(attributes, path))
        if value is not None:
            return value
    return None


def resolve_identity(attributes: Mapping[str, Any]) -> Optional[str]:
    """
    Derive the stable identity of a row.

    Precedence: linkedin_url, person.linkedin_url, id. Empty and
    whitespace-only values are skipped.

    Returns:
        Identity string or None when no field is usable
    """
    return _first_present(attributes, PERSON_IDENTITY_FIELDS)


def resolve_organization_id(attributes: Mapping[str, Any]) -> Optional[str]:
    """
    Derive the organization identity used as the cache key.

    Precedence: organization.id, organization_id, apollo_org_id.
    """
    return _first_present(attributes, ORGANIZATION_IDENTITY_FIELDS)
