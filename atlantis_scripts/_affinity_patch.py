"""Build Deployment patches for node affinity and tolerations.

Patches are assembled as typed documents and rendered to a mapping once, at
the point kubectl needs them. ``spec.template.spec.tolerations`` carries no
merge key, so a strategic merge patch replaces the list wholesale; every
builder therefore emits the complete toleration list it wants to keep.

Examples
--------
>>> patch = build_affinity_patch("gpu", existing_tolerations=[{"key": "custom"}])
>>> [t["key"] for t in patch.tolerations]
['workload-type', 'custom']
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from atlantis_scripts._affinity_models import GKE_SPOT_KEY, WORKLOAD_TYPE_KEY

ARCH_KEY = "kubernetes.io/arch"
DEFAULT_ARCH = "amd64"


def spot_toleration() -> dict[str, Any]:
    """Return the canonical GKE spot toleration."""
    return {
        "key": GKE_SPOT_KEY,
        "operator": "Equal",
        "value": "true",
        "effect": "NoSchedule",
    }


def workload_type_toleration(workload_type: str) -> dict[str, Any]:
    return {"key": WORKLOAD_TYPE_KEY, "operator": "Equal", "value": workload_type}


@dataclass(frozen=True, slots=True)
class NodeRequirement:
    """A single ``key In [values]`` required node selector expression."""

    key: str
    values: tuple[str, ...]

    def to_mapping(self) -> dict[str, Any]:
        return {
            "requiredDuringSchedulingIgnoredDuringExecution": {
                "nodeSelectorTerms": [
                    {
                        "matchExpressions": [
                            {"key": self.key, "operator": "In", "values": list(self.values)}
                        ]
                    }
                ]
            }
        }


@dataclass(frozen=True, slots=True)
class AffinityPatch:
    """Pod template scheduling patch for a Deployment.

    Attributes
    ----------
    requirement
        Required node affinity to set, or ``None`` to leave affinity alone.
    tolerations
        Complete replacement toleration list.
    """

    requirement: NodeRequirement | None
    tolerations: tuple[dict[str, Any], ...] = field(default_factory=tuple)

    def to_mapping(self) -> dict[str, Any]:
        """Render the strategic merge patch document."""
        pod_spec: dict[str, Any] = {}
        if self.requirement is not None:
            pod_spec["affinity"] = {"nodeAffinity": self.requirement.to_mapping()}
        pod_spec["tolerations"] = [dict(t) for t in self.tolerations]
        return {"spec": {"template": {"spec": pod_spec}}}


def build_affinity_patch(
    workload_type: str,
    *,
    include_spot_toleration: bool = False,
    existing_tolerations: Iterable[Mapping[str, Any]] = (),
) -> AffinityPatch:
    """Build the workload-type affinity patch for a Deployment.

    Parameters
    ----------
    workload_type : str
        Expected workload type label value.
    include_spot_toleration : bool, optional
        Append the canonical spot toleration, replacing any existing spot
        entries.
    existing_tolerations : Iterable[Mapping[str, Any]], optional
        Tolerations currently on the Deployment.

    Returns
    -------
    AffinityPatch
        Patch whose toleration list starts with the workload-type entry,
        followed by unrelated tolerations verbatim and then spot tolerations.
    """
    existing = [dict(t) for t in existing_tolerations]
    tolerations = [workload_type_toleration(workload_type)]
    tolerations.extend(
        t for t in existing if t.get("key") not in (WORKLOAD_TYPE_KEY, GKE_SPOT_KEY)
    )
    if include_spot_toleration:
        tolerations.append(spot_toleration())
    else:
        tolerations.extend(t for t in existing if t.get("key") == GKE_SPOT_KEY)
    return AffinityPatch(
        requirement=NodeRequirement(WORKLOAD_TYPE_KEY, (workload_type,)),
        tolerations=tuple(tolerations),
    )


def build_spot_toleration_patch(
    existing_tolerations: Iterable[Mapping[str, Any]] = (),
) -> AffinityPatch:
    """Add the canonical spot toleration while keeping every other toleration.

    Non-canonical spot entries (wrong operator, value or effect) are replaced.
    """
    kept = [dict(t) for t in existing_tolerations if t.get("key") != GKE_SPOT_KEY]
    return AffinityPatch(requirement=None, tolerations=(*kept, spot_toleration()))


def build_system_cleanup_patch() -> AffinityPatch:
    """Replace workload-type scheduling with a plain architecture requirement."""
    return AffinityPatch(
        requirement=NodeRequirement(ARCH_KEY, (DEFAULT_ARCH,)),
        tolerations=(),
    )
