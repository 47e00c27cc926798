"""Classify drift between declared and live Deployment scheduling.

A Deployment needs a patch when its required ``workload-type`` affinity or
its ``workload-type`` toleration differs from the workload type its atlantis
repository declares, or when it prefers spot nodes without tolerating the
spot taint. A spot toleration without a spot preference is reported but
never forces a patch on its own.

Examples
--------
>>> report = classify_drift("core", ObservedAffinity())
>>> report.needs_patch
True
>>> report.status
'affinity:✗ toleration:✗ spot-affinity:✗ spot-toleration:✗ (needs workload-type: core)'
"""

from __future__ import annotations

import enum
from dataclasses import dataclass

from atlantis_scripts._affinity_models import ObservedAffinity

OK_MARK = "✓"
MISSING_MARK = "✗"


class DriftReason(enum.StrEnum):
    """Individual facets that can be out of line."""

    AFFINITY_MISMATCH = "affinity-mismatch"
    TOLERATION_MISMATCH = "toleration-mismatch"
    MISSING_SPOT_TOLERATION = "missing-spot-toleration"
    ORPHAN_SPOT_TOLERATION = "orphan-spot-toleration"


# Reasons that trigger a patch; ORPHAN_SPOT_TOLERATION is informational.
PATCH_REASONS = frozenset(
    {
        DriftReason.AFFINITY_MISMATCH,
        DriftReason.TOLERATION_MISMATCH,
        DriftReason.MISSING_SPOT_TOLERATION,
    }
)


@dataclass(frozen=True, slots=True)
class DriftReport:
    """Outcome of comparing expected and observed scheduling.

    Attributes
    ----------
    expected_workload_type
        Workload type derived from the atlantis nodepool.
    observed
        Live facets the comparison was made against.
    reasons
        Facets found out of line, in evaluation order.
    status
        Human-readable per-facet status used by dry-run reports.
    """

    expected_workload_type: str
    observed: ObservedAffinity
    reasons: tuple[DriftReason, ...]
    status: str

    @property
    def needs_patch(self) -> bool:
        return any(reason in PATCH_REASONS for reason in self.reasons)

    @property
    def needs_spot_toleration(self) -> bool:
        return DriftReason.MISSING_SPOT_TOLERATION in self.reasons


def _mark(flag: bool) -> str:
    return OK_MARK if flag else MISSING_MARK


def _status_line(expected: str, observed: ObservedAffinity, reasons: tuple[DriftReason, ...]) -> str:
    workload_type_ok = not (
        DriftReason.AFFINITY_MISMATCH in reasons or DriftReason.TOLERATION_MISMATCH in reasons
    )
    if workload_type_ok:
        if DriftReason.MISSING_SPOT_TOLERATION in reasons:
            return (
                f"affinity:{OK_MARK} toleration:{OK_MARK} spot-affinity:{OK_MARK} "
                f"spot-toleration:{MISSING_MARK} (needs spot toleration)"
            )
        if DriftReason.ORPHAN_SPOT_TOLERATION in reasons:
            return (
                f"affinity:{OK_MARK} toleration:{OK_MARK} spot-affinity:{MISSING_MARK} "
                f"spot-toleration:{OK_MARK} (spot toleration without spot affinity)"
            )
        spot = OK_MARK if observed.has_spot_affinity else "N/A"
        return f"affinity:{OK_MARK} toleration:{OK_MARK} spot:{spot} (correct)"

    status = (
        f"affinity:{_mark(observed.has_workload_type_affinity)} "
        f"toleration:{_mark(observed.has_workload_type_toleration)} "
        f"spot-affinity:{_mark(observed.has_spot_affinity)} "
        f"spot-toleration:{_mark(observed.has_spot_toleration)}"
    )
    if not (observed.has_workload_type_affinity and observed.has_workload_type_toleration):
        return f"{status} (needs workload-type: {expected})"
    return (
        f"{status} (wrong value - affinity: {observed.affinity_workload_type}, "
        f"toleration: {observed.toleration_workload_type}, should be: {expected})"
    )


def classify_drift(expected_workload_type: str, observed: ObservedAffinity) -> DriftReport:
    """Compare the expected workload type with observed Deployment facets.

    Parameters
    ----------
    expected_workload_type : str
        Workload type resolved from the atlantis repository.
    observed : ObservedAffinity
        Facets read from the live Deployment.

    Returns
    -------
    DriftReport
        Reasons and status text; ``needs_patch`` drives live patching.
    """
    reasons: list[DriftReason] = []
    if observed.affinity_workload_type != expected_workload_type:
        reasons.append(DriftReason.AFFINITY_MISMATCH)
    if observed.toleration_workload_type != expected_workload_type:
        reasons.append(DriftReason.TOLERATION_MISMATCH)
    if observed.has_spot_affinity and not observed.has_spot_toleration:
        reasons.append(DriftReason.MISSING_SPOT_TOLERATION)
    if observed.has_spot_toleration and not observed.has_spot_affinity:
        reasons.append(DriftReason.ORPHAN_SPOT_TOLERATION)

    frozen = tuple(reasons)
    return DriftReport(
        expected_workload_type=expected_workload_type,
        observed=observed,
        reasons=frozen,
        status=_status_line(expected_workload_type, observed, frozen),
    )
