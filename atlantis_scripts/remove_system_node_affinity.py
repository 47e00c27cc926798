#!/usr/bin/env -S uv run python
# /// script
# requires-python = ">=3.13"
# dependencies = ["cyclopts>=2.9", "plumbum", "pyyaml"]
# ///
"""Remove workload-type scheduling from Deployments in system namespaces.

System components must stay schedulable on any node, so Deployments in the
system namespaces that picked up a ``workload-type`` affinity or toleration
are reset to a plain ``kubernetes.io/arch`` requirement with no tolerations.
Each patched Deployment waits for its rollout before the next one is
touched.
"""

from __future__ import annotations

import logging
import sys
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Annotated

from cyclopts import App, Parameter

from atlantis_scripts._affinity_errors import AffinityToolError, KubectlCommandError
from atlantis_scripts._affinity_inspect import observe_deployment
from atlantis_scripts._affinity_models import ClusterSummary, DeploymentRef
from atlantis_scripts._affinity_patch import build_system_cleanup_patch
from atlantis_scripts._cluster_targets import (
    SYSTEM_NAMESPACES,
    cluster_contexts,
    confirm,
    ensure_context,
    print_cluster_banner,
    print_footer,
    print_header,
    print_listing,
)
from atlantis_scripts._input_resolution import Environment, validate_environment
from atlantis_scripts._kubectl import list_deployments, namespace_exists, patch_deployment
from atlantis_scripts._rollout_batch import (
    RolloutSettings,
    resolve_rollout_settings,
    wait_for_rollout,
)

CLEANUP_PAUSE_SECONDS = 2

app = App(help="Remove workload-type node affinity from system namespaces.")
logger = logging.getLogger(__name__)


@dataclass(slots=True)
class CleanupRun:
    """Options and collaborators for a system namespace cleanup."""

    dry_run: bool
    rollout: RolloutSettings = field(default_factory=RolloutSettings)
    sleep: Callable[[float], None] = time.sleep


def _clean_deployment(ref: DeploymentRef, run: CleanupRun, summary: ClusterSummary) -> None:
    print(f"  Checking deployment {ref.name}...")
    observed = observe_deployment(ref)
    if observed is None:
        summary.failed.append(ref.qualified_name)
        return
    if not (observed.has_workload_type_affinity or observed.has_workload_type_toleration):
        print("    ✓ No workload-type configuration found - skipping")
        summary.skipped.append(ref.qualified_name)
        return

    summary.patched.append(ref.qualified_name)
    if run.dry_run:
        print("    → [DRY RUN] Would remove workload-type configuration")
        return

    print("    → Found workload-type configuration - removing...")
    patch = build_system_cleanup_patch()
    try:
        patch_deployment(ref.context, ref.namespace, ref.name, patch.to_mapping())
    except KubectlCommandError as exc:
        logger.warning("Cleanup patch of %s failed: %s", ref.qualified_name, exc)
        print(f"    ✗ Failed to patch deployment {ref.name} in namespace {ref.namespace}")
        summary.patched.remove(ref.qualified_name)
        summary.failed.append(ref.qualified_name)
        return

    print("    ✓ Successfully removed workload-type configuration")
    if not wait_for_rollout(ref, run.rollout, indent="    "):
        summary.rollout_failures.append(ref.qualified_name)
    run.sleep(CLEANUP_PAUSE_SECONDS)


def clean_system_namespaces(context: str, run: CleanupRun) -> ClusterSummary:
    """Reset workload-type scheduling on system Deployments in *context*."""
    summary = ClusterSummary(context=context)
    print_cluster_banner(context)
    if not ensure_context(context):
        summary.reachable = False
        return summary

    for namespace in SYSTEM_NAMESPACES:
        print("")
        print(f"Processing system namespace: {namespace}")
        if not namespace_exists(context, namespace):
            print(f"  Namespace {namespace} does not exist - skipping")
            continue
        try:
            names = [name for _, name in list_deployments(context, namespace)]
        except KubectlCommandError as exc:
            print(f"  Unable to list deployments in {namespace}: {exc}")
            continue
        for name in names:
            _clean_deployment(DeploymentRef(context, namespace, name), run, summary)
    return summary


def print_cleanup_summary(summary: ClusterSummary, *, dry_run: bool) -> None:
    print("")
    print(f"Summary for cluster {summary.context}:")
    if dry_run:
        print(f"  Deployments that would be cleaned: {len(summary.patched)}")
    else:
        print(f"  Deployments cleaned: {len(summary.patched)}")
    print(f"  Deployments skipped (no workload-type config): {len(summary.skipped)}")
    heading = "Deployments that would be cleaned" if dry_run else "Cleaned deployments"
    print_listing(heading, summary.patched)
    print_listing("Failed deployments", summary.failed)
    print_listing("Rollouts that did not complete", summary.rollout_failures)
    print(f"Completed cleaning system namespaces in cluster {summary.context}")


@app.default
def main(
    environment: Environment,
    *,
    dry_run: Annotated[
        bool, Parameter(help="Show what would be changed without making modifications.")
    ] = False,
    rollout_timeout: Annotated[
        int | None, Parameter(help="Seconds to wait for each rollout.")
    ] = None,
    yes: Annotated[bool, Parameter(help="Skip the confirmation prompt.")] = False,
) -> int:
    """Remove workload-type node affinity from system namespace Deployments."""
    environment = validate_environment(environment)
    run = CleanupRun(
        dry_run=dry_run,
        rollout=resolve_rollout_settings(timeout=rollout_timeout),
    )
    print_header(
        "System Namespace Node Affinity Remover",
        environment,
        dry_run=dry_run,
        dry_run_note="no changes will be made",
    )
    if not dry_run and not yes:
        if not confirm(
            "Proceed with removing workload-type node affinity from system namespaces?"
        ):
            print("Aborted.")
            return 1

    try:
        for context in cluster_contexts(environment):
            summary = clean_system_namespaces(context, run)
            if summary.reachable:
                print_cleanup_summary(summary, dry_run=dry_run)
    except AffinityToolError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    print_footer()
    return 0


if __name__ == "__main__":  # pragma: no cover - CLI entrypoint
    raise SystemExit(app())
