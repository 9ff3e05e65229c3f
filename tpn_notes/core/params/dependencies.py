"""
Derived-parameter dependency table and the dependency extractor.

The table is static configuration. It is checked for cycles when this module
is imported, so a bad edit fails at load time instead of mid-evaluation.
"""
from __future__ import annotations

import re
from collections import defaultdict, deque
from typing import Dict, Iterable, List, Mapping, Sequence, Set, Tuple

from .keys import canonicalize

DERIVED_DEPENDENCIES: Mapping[str, Tuple[str, ...]] = {
    "TotalVolume": ("VolumePerKG", "DoseWeightKG"),
    "LipidVolTotal": ("Fat", "DoseWeightKG", "prefFatConcentration"),
    "NonLipidVolTotal": ("TotalVolume", "LipidVolTotal"),
    "admixture": ("admixturecheckbox", "EditMode"),
    "DexPercent": ("Carbohydrates", "DoseWeightKG", "TotalVolume", "NonLipidVolTotal", "admixture"),
    "OsmoValue": ("DexPercent", "Protein", "DoseWeightKG", "NonLipidVolTotal"),
    "TotalEnergy": ("Protein", "Carbohydrates", "Fat"),
    "NLrate": ("NonLipidVolTotal", "InfuseOver"),
    "Lrate": ("LipidVolTotal", "LipidInfuseOver"),
    "TPNrate": ("TotalVolume", "InfuseOver"),
    "prefFatText": ("prefFatConcentration",),
    "prefProteinText": ("prefProteinConcentration",),
}

# bare identifiers that count as a reference when they appear anywhere in code
DERIVED_IDENTIFIERS: Tuple[str, ...] = (
    "TotalVolume", "NonLipidVolTotal", "NonLipidVolume", "LipidVolTotal",
    "DexPercent", "OsmoValue", "Osmolarity", "PeripheralOsmoMax", "admixture",
    "TotalEnergy", "NLrate", "Lrate", "TPNrate",
)

_Q = r"""(['"`])"""
_GET_VALUE_RE = re.compile(r"\b(?:me|api)\s*\.\s*getValue\s*\(\s*" + _Q + r"([^'\"`]+)\1\s*\)")
_GET_OBJECT_RE = re.compile(r"\b(?:me|api)\s*\.\s*getObject\s*\(\s*" + _Q + r"([^'\"`]+)\1\s*\)")
_IDENT_RE = re.compile(r"\b(" + "|".join(DERIVED_IDENTIFIERS) + r")\b")


class CircularDependencyError(Exception):
    pass


class DependencyGraph:
    """Prerequisite graph over canonical keys (edge: prerequisite -> derived)."""

    def __init__(self, table: Mapping[str, Sequence[str]]):
        self.nodes: Set[str] = set()
        self.edges: Dict[str, List[str]] = defaultdict(list)
        for derived, prereqs in table.items():
            self.nodes.add(derived)
            for dep in prereqs:
                self.nodes.add(dep)
                self.edges[dep].append(derived)

    def topological_sort(self) -> List[str]:
        in_degree: Dict[str, int] = {name: 0 for name in self.nodes}
        for targets in self.edges.values():
            for node in targets:
                in_degree[node] += 1

        queue = deque(sorted(n for n, d in in_degree.items() if d == 0))
        order: List[str] = []

        while queue:
            current = queue.popleft()
            order.append(current)
            for neighbor in self.edges[current]:
                in_degree[neighbor] -= 1
                if in_degree[neighbor] == 0:
                    queue.append(neighbor)

        if len(order) != len(self.nodes):
            stuck = sorted(n for n, d in in_degree.items() if d > 0)
            raise CircularDependencyError(f"Circular parameter dependency among: {', '.join(stuck)}")

        return order


def validate_dependency_table(table: Mapping[str, Sequence[str]]) -> List[str]:
    """Raise CircularDependencyError on a cycle or a non-canonical key; return a topological order."""
    for derived, prereqs in table.items():
        for key in (derived, *prereqs):
            if canonicalize(key) != key:
                raise ValueError(f"Dependency table key {key!r} is not canonical (use {canonicalize(key)!r})")
    return DependencyGraph(table).topological_sort()


DERIVED_ORDER: Tuple[str, ...] = tuple(validate_dependency_table(DERIVED_DEPENDENCIES))


def is_derived(key: str) -> bool:
    return canonicalize(key) in DERIVED_DEPENDENCIES


def _is_selector(arg: str) -> bool:
    return not arg[:1].isalnum() or "[" in arg


def extract_direct(code: str) -> Set[str]:
    """Canonical keys referenced directly by dynamic code."""
    keys: Set[str] = set()
    if not code:
        return keys

    for m in _GET_VALUE_RE.finditer(code):
        keys.add(canonicalize(m.group(2)))

    for m in _GET_OBJECT_RE.finditer(code):
        arg = m.group(2).strip()
        if arg and not _is_selector(arg):
            keys.add(canonicalize(arg))

    for m in _IDENT_RE.finditer(code):
        keys.add(canonicalize(m.group(1)))

    keys.discard("")
    return keys


def expand_dependencies(
    keys: Iterable[str],
    table: Mapping[str, Sequence[str]] = DERIVED_DEPENDENCIES,
) -> Set[str]:
    """Union in prerequisites until nothing changes; bounded by len(table) rounds for an acyclic table."""
    closure = {canonicalize(k) for k in keys}
    for _ in range(len(table) + 1):
        added = {dep for k in closure if k in table for dep in table[k]} - closure
        if not added:
            break
        closure |= added
    return closure


def extract_transitive(code: str) -> Set[str]:
    return expand_dependencies(extract_direct(code))


def required_inputs(code: str) -> List[str]:
    """Non-derived keys a caller must collect before evaluating ``code``."""
    return sorted(k for k in extract_transitive(code) if k not in DERIVED_DEPENDENCIES)
