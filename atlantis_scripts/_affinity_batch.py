"""Align Deployment node affinity with atlantis nodepool declarations.

For every Deployment in the targeted clusters this flow resolves the
expected workload type from the owning atlantis repository, inspects the
live object, classifies drift and, outside dry runs, applies a corrective
patch with rollout checkpoints between batches.

Prerequisites
-------------
kubectl on the PATH with contexts named after the environment's clusters,
and local checkouts of the ``atlantis-*`` repositories under
``atlantis_path``.

A dry run is ``run_patch_all(PatchOptions("daily", Path("."), dry_run=True))``;
it classifies every Deployment and prints one status line each without
patching.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from atlantis_scripts._affinity_drift import DriftReport, classify_drift
from atlantis_scripts._affinity_errors import KubectlCommandError
from atlantis_scripts._affinity_inspect import observe_deployment
from atlantis_scripts._affinity_models import ClusterSummary, DeploymentRef
from atlantis_scripts._affinity_patch import build_affinity_patch
from atlantis_scripts._cluster_targets import (
    cluster_contexts,
    ensure_context,
    iter_deployments,
    print_cluster_banner,
    print_listing,
)
from atlantis_scripts._kubectl import patch_deployment
from atlantis_scripts._nodepool_config import resolve_expected_workload_type
from atlantis_scripts._rollout_batch import RolloutBatch, RolloutSettings

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class PatchOptions:
    """Resolved options for a patch-all run."""

    environment: str
    atlantis_path: Path
    dry_run: bool = False
    only_missing: bool = False
    target: tuple[str, str] | None = None
    rollout: RolloutSettings = field(default_factory=RolloutSettings)


def _dry_run_deployment(
    ref: DeploymentRef,
    report: DriftReport,
    options: PatchOptions,
    summary: ClusterSummary,
) -> None:
    if not options.only_missing or report.needs_patch:
        print(f"{ref.qualified_name} → {report.status}")
    if report.needs_patch:
        summary.patched.append(ref.qualified_name)
    else:
        summary.skipped.append(ref.qualified_name)


def _live_deployment(
    ref: DeploymentRef,
    report: DriftReport,
    nodepool: str,
    summary: ClusterSummary,
    batch: RolloutBatch,
) -> None:
    expected = report.expected_workload_type
    if not report.needs_patch:
        print(
            "  ✓ Already has correct workload-type affinity and toleration "
            f"({expected}) - skipping"
        )
        summary.skipped.append(ref.qualified_name)
        return

    observed = report.observed
    if observed.affinity_workload_type != expected:
        print("  ⚠ Missing or incorrect workload-type affinity")
    if observed.toleration_workload_type != expected:
        print("  ⚠ Missing or incorrect workload-type toleration")
    if report.needs_spot_toleration:
        print("  ⚠ Has spot affinity but missing spot toleration")
    print(f"  → Expected nodepool (from atlantis): {nodepool}")
    print(f"  → Target workload-type: {expected}")
    print("  → Applying workload-type patch")
    if report.needs_spot_toleration:
        print("  → Including spot toleration in patch")

    patch = build_affinity_patch(
        expected,
        include_spot_toleration=report.needs_spot_toleration,
        existing_tolerations=observed.tolerations,
    )
    try:
        patch_deployment(ref.context, ref.namespace, ref.name, patch.to_mapping())
    except KubectlCommandError as exc:
        logger.warning("Patch of %s failed: %s", ref.qualified_name, exc)
        print(f"  ✗ Failed to patch deployment {ref.name} in namespace {ref.namespace}")
        summary.failed.append(ref.qualified_name)
        return

    summary.patched.append(ref.qualified_name)
    summary.rollout_failures.extend(r.qualified_name for r in batch.record(ref))


def patch_cluster(
    context: str,
    options: PatchOptions,
    batch: RolloutBatch | None = None,
) -> ClusterSummary:
    """Classify, and outside dry runs patch, every Deployment in *context*."""
    summary = ClusterSummary(context=context)
    print_cluster_banner(context)
    if not ensure_context(context):
        summary.reachable = False
        return summary

    batch = batch or RolloutBatch(options.rollout)
    try:
        refs = list(iter_deployments(context, options.target))
    except KubectlCommandError as exc:
        print(f"Error: unable to list deployments in {context}: {exc}")
        summary.reachable = False
        return summary

    for ref in refs:
        if not options.dry_run:
            print(f"Checking deployment {ref.name} in namespace {ref.namespace}...")
        nodepool, workload_type = resolve_expected_workload_type(
            options.atlantis_path, ref.namespace, ref.name, options.environment
        )
        observed = observe_deployment(ref)
        if observed is None:
            print(f"  ✗ Unable to read deployment {ref.qualified_name} - skipping")
            summary.failed.append(ref.qualified_name)
            continue
        report = classify_drift(workload_type, observed)
        if options.dry_run:
            _dry_run_deployment(ref, report, options, summary)
        else:
            _live_deployment(ref, report, nodepool, summary, batch)
    return summary


def print_patch_summary(summary: ClusterSummary, *, dry_run: bool) -> None:
    print("")
    print(f"Summary for cluster {summary.context}:")
    label = "Deployments needing patch" if dry_run else "Deployments patched"
    print(f"  {label}: {len(summary.patched)}")
    print(f"  Deployments skipped (already configured): {len(summary.skipped)}")
    if summary.failed:
        print(f"  Deployments failed: {len(summary.failed)}")
    print_listing("Skipped deployments", summary.skipped)
    print_listing("Failed deployments", summary.failed)
    print_listing("Rollouts that did not complete", summary.rollout_failures)
    print(f"Completed patching all deployments in cluster {summary.context}")


def run_patch_all(
    options: PatchOptions,
    batch_factory: Callable[[RolloutSettings], RolloutBatch] | None = None,
) -> list[ClusterSummary]:
    """Process every cluster of the environment and return per-cluster summaries."""
    summaries: list[ClusterSummary] = []
    for context in cluster_contexts(options.environment):
        batch = (batch_factory or RolloutBatch)(options.rollout)
        summary = patch_cluster(context, options, batch)
        if summary.reachable:
            print_patch_summary(summary, dry_run=options.dry_run)
        summaries.append(summary)
    return summaries
