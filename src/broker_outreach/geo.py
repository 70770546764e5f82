"""US state adjacency graph used to find brokers near a carrier's home base."""

from __future__ import annotations

from types import MappingProxyType

_ADJACENCY: dict[str, tuple[str, ...]] = {
    "NJ": ("NY", "PA", "DE"),
    "NY": ("NJ", "PA", "CT", "MA", "VT"),
    "PA": ("NJ", "NY", "DE", "MD", "WV", "OH"),
    "DE": ("NJ", "PA", "MD"),
    "MD": ("PA", "DE", "WV", "VA", "DC"),
    "VA": ("MD", "DC", "WV", "KY", "TN", "NC"),
    "NC": ("VA", "TN", "SC", "GA"),
    "SC": ("NC", "GA"),
    "GA": ("SC", "NC", "TN", "AL", "FL"),
    "FL": ("GA", "AL"),
    "AL": ("TN", "GA", "FL", "MS"),
    "MS": ("TN", "AL", "AR", "LA"),
    "LA": ("MS", "AR", "TX"),
    "TX": ("LA", "AR", "OK", "NM"),
    "OK": ("TX", "AR", "MO", "KS", "CO", "NM"),
    "AR": ("MO", "TN", "MS", "LA", "TX", "OK"),
    "TN": ("KY", "VA", "NC", "GA", "AL", "MS", "AR", "MO"),
    "KY": ("OH", "WV", "VA", "TN", "MO", "IL", "IN"),
    "WV": ("OH", "PA", "MD", "VA", "KY"),
    "OH": ("PA", "WV", "KY", "IN", "MI"),
    "MI": ("OH", "IN", "WI"),
    "IN": ("OH", "KY", "IL", "MI"),
    "IL": ("WI", "IN", "KY", "MO", "IA"),
    "WI": ("MI", "IL", "IA", "MN"),
    "MN": ("WI", "IA", "ND", "SD"),
    "IA": ("MN", "WI", "IL", "MO", "NE", "SD"),
    "MO": ("IA", "IL", "KY", "TN", "AR", "OK", "KS", "NE"),
    "KS": ("NE", "MO", "OK", "CO"),
    "NE": ("SD", "IA", "MO", "KS", "CO", "WY"),
    "SD": ("ND", "MN", "IA", "NE", "WY", "MT"),
    "ND": ("MN", "SD", "MT"),
    "MT": ("ND", "SD", "WY", "ID"),
    "WY": ("MT", "SD", "NE", "CO", "UT", "ID"),
    "CO": ("WY", "NE", "KS", "OK", "NM", "UT"),
    "NM": ("CO", "OK", "TX", "AZ", "UT"),
    "AZ": ("NM", "UT", "NV", "CA"),
    "UT": ("WY", "CO", "NM", "AZ", "NV", "ID"),
    "NV": ("OR", "ID", "UT", "AZ", "CA"),
    "CA": ("OR", "NV", "AZ"),
    "OR": ("WA", "ID", "NV", "CA"),
    "WA": ("OR", "ID"),
    "ID": ("WA", "OR", "NV", "UT", "WY", "MT"),
    "CT": ("NY", "MA", "RI"),
    "MA": ("NY", "CT", "RI", "NH", "VT"),
    "RI": ("CT", "MA"),
    "NH": ("MA", "VT", "ME"),
    "VT": ("NY", "MA", "NH"),
    "ME": ("NH",),
    "DC": ("MD", "VA"),
}

STATE_NEIGHBORS: MappingProxyType[str, frozenset[str]] = MappingProxyType(
    {state: frozenset(neighbors) for state, neighbors in _ADJACENCY.items()}
)


def normalize_region(region: str | None) -> str:
    return (region or "").strip().upper()


def neighbors(region: str | None) -> frozenset[str]:
    """Regions bordering ``region``. Unknown codes have no neighbors."""
    return STATE_NEIGHBORS.get(normalize_region(region), frozenset())


def is_neighbor(home: str | None, other: str | None) -> bool:
    return normalize_region(other) in neighbors(home)


def target_regions(home: str | None) -> frozenset[str]:
    """Home region plus everything adjacent to it."""
    code = normalize_region(home)
    if not code:
        return frozenset()
    return frozenset({code}) | neighbors(code)
