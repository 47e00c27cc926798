#!/usr/bin/env -S uv run python
# /// script
# requires-python = ">=3.13"
# dependencies = ["cyclopts>=2.9", "plumbum", "pyyaml"]
# ///
"""Add the GKE spot toleration to Deployments that prefer spot nodes.

A Deployment that prefers spot nodes but does not tolerate the
``cloud.google.com/gke-spot`` taint can never be scheduled there. This script
finds those Deployments in every non-system namespace and adds the
toleration, keeping every toleration already present.
"""

from __future__ import annotations

import logging
import sys
from typing import Annotated

from cyclopts import App, Parameter

from atlantis_scripts._affinity_errors import AffinityToolError, KubectlCommandError
from atlantis_scripts._affinity_inspect import observe_deployment
from atlantis_scripts._affinity_models import ClusterSummary, DeploymentRef, ObservedAffinity
from atlantis_scripts._affinity_patch import build_spot_toleration_patch
from atlantis_scripts._cluster_targets import (
    cluster_contexts,
    confirm,
    ensure_context,
    iter_deployments,
    print_cluster_banner,
    print_footer,
    print_header,
    print_listing,
)
from atlantis_scripts._input_resolution import Environment, validate_environment
from atlantis_scripts._kubectl import patch_deployment
from atlantis_scripts._rollout_batch import (
    RolloutBatch,
    RolloutSettings,
    resolve_rollout_settings,
)

app = App(help="Add GKE spot tolerations to Deployments with spot node affinity.")
logger = logging.getLogger(__name__)


def _patch_spot_toleration(
    ref: DeploymentRef,
    observed: ObservedAffinity,
    summary: ClusterSummary,
    batch: RolloutBatch,
) -> None:
    print(f"Checking deployment {ref.name} in namespace {ref.namespace}...")
    if observed.has_spot_toleration:
        print("  ✓ Already has GKE spot toleration - skipping")
        summary.skipped.append(ref.qualified_name)
        return

    print("  → Has spot affinity but missing GKE spot toleration")
    print("  → Adding GKE spot toleration")
    patch = build_spot_toleration_patch(observed.tolerations)
    try:
        patch_deployment(ref.context, ref.namespace, ref.name, patch.to_mapping())
    except KubectlCommandError as exc:
        logger.warning("Spot toleration patch of %s failed: %s", ref.qualified_name, exc)
        print(f"  ✗ Failed to patch deployment {ref.name} in namespace {ref.namespace}")
        summary.failed.append(ref.qualified_name)
        return

    summary.patched.append(ref.qualified_name)
    print("  ✓ Successfully added GKE spot toleration")
    summary.rollout_failures.extend(r.qualified_name for r in batch.record(ref))


def _report_spot_toleration(
    ref: DeploymentRef,
    observed: ObservedAffinity,
    summary: ClusterSummary,
) -> None:
    if observed.has_spot_toleration:
        print(f"{ref.qualified_name} → has spot affinity ✓ (already has GKE spot toleration)")
        summary.skipped.append(ref.qualified_name)
    else:
        print(f"{ref.qualified_name} → has spot affinity → needs GKE spot toleration")
        summary.patched.append(ref.qualified_name)


def add_spot_tolerations(
    context: str,
    *,
    dry_run: bool,
    batch: RolloutBatch,
) -> ClusterSummary:
    """Add the spot toleration to spot-preferring Deployments in *context*."""
    summary = ClusterSummary(context=context)
    print_cluster_banner(context)
    if not ensure_context(context):
        summary.reachable = False
        return summary

    try:
        refs = list(iter_deployments(context, announce_skips=False))
    except KubectlCommandError as exc:
        print(f"Error: unable to list deployments in {context}: {exc}")
        summary.reachable = False
        return summary

    for ref in refs:
        observed = observe_deployment(ref)
        if observed is None:
            print(f"  ✗ Unable to read deployment {ref.qualified_name} - skipping")
            summary.failed.append(ref.qualified_name)
            continue
        if not observed.has_spot_affinity:
            if dry_run:
                print(f"{ref.qualified_name} → no spot affinity")
            summary.without_spot_affinity.append(ref.qualified_name)
        elif dry_run:
            _report_spot_toleration(ref, observed, summary)
        else:
            _patch_spot_toleration(ref, observed, summary, batch)
    return summary


def print_spot_summary(summary: ClusterSummary) -> None:
    print("")
    print(f"Summary for cluster {summary.context}:")
    print(f"  Deployments patched: {len(summary.patched)}")
    print(f"  Deployments skipped (already have toleration): {len(summary.skipped)}")
    print(f"  Deployments without spot affinity: {len(summary.without_spot_affinity)}")
    print_listing("Patched deployments", summary.patched)
    print_listing("Skipped deployments", summary.skipped)
    print_listing("Deployments without spot affinity", summary.without_spot_affinity)
    print_listing("Failed deployments", summary.failed)
    print_listing("Rollouts that did not complete", summary.rollout_failures)
    print(f"Completed processing cluster {summary.context}")


def run_add_spot_tolerations(
    environment: str,
    *,
    dry_run: bool,
    rollout: RolloutSettings,
) -> list[ClusterSummary]:
    summaries: list[ClusterSummary] = []
    for context in cluster_contexts(environment):
        summary = add_spot_tolerations(context, dry_run=dry_run, batch=RolloutBatch(rollout))
        if summary.reachable:
            print_spot_summary(summary)
        summaries.append(summary)
    return summaries


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
    batch_size: Annotated[
        int | None, Parameter(help="Patches between rollout checkpoints.")
    ] = None,
    batch_pause: Annotated[
        int | None, Parameter(help="Seconds to pause after each checkpoint.")
    ] = None,
    yes: Annotated[bool, Parameter(help="Skip the confirmation prompt.")] = False,
) -> int:
    """Add GKE spot tolerations to Deployments with spot node affinity."""
    environment = validate_environment(environment)
    rollout = resolve_rollout_settings(
        timeout=rollout_timeout,
        batch_size=batch_size,
        pause=batch_pause,
    )
    print_header(
        "GKE Spot Toleration Patcher",
        environment,
        dry_run=dry_run,
        dry_run_note="showing deployments that would be patched",
    )
    if not dry_run and not yes:
        if not confirm(
            "Proceed with adding GKE spot tolerations to deployments with spot affinity?"
        ):
            print("Aborted.")
            return 1

    try:
        run_add_spot_tolerations(environment, dry_run=dry_run, rollout=rollout)
    except AffinityToolError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    print_footer()
    return 0


if __name__ == "__main__":  # pragma: no cover - CLI entrypoint
    raise SystemExit(app())
