#!/usr/bin/env -S uv run python
# /// script
# requires-python = ">=3.13"
# dependencies = ["cyclopts>=2.9", "plumbum", "pyyaml", "python-hcl2"]
# ///
"""Patch Deployment node affinity to match atlantis nodepool settings.

This script:
- resolves each Deployment's expected nodepool from its atlantis repository;
- compares the workload-type affinity, tolerations and spot settings with
  the live object;
- patches Deployments that drifted, waiting on rollouts every few patches;
  and
- prints a per-cluster summary.
"""

from __future__ import annotations

import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Annotated

from cyclopts import App, Parameter

from atlantis_scripts._affinity_batch import PatchOptions, run_patch_all
from atlantis_scripts._affinity_errors import AffinityToolError
from atlantis_scripts._cluster_targets import confirm, print_footer, print_header
from atlantis_scripts._input_resolution import (
    Environment,
    InputResolution,
    parse_target,
    resolve_input,
    validate_environment,
)
from atlantis_scripts._rollout_batch import resolve_rollout_settings

app = App(help="Patch Deployment node affinity to match atlantis nodepool settings.")


@dataclass(frozen=True, slots=True)
class RawPatchInputs:
    """Raw patch inputs from the CLI."""

    environment: str
    dry_run: bool = False
    deployment: str | None = None
    only_missing: bool = False
    atlantis_path: Path | None = None
    rollout_timeout: int | None = None
    batch_size: int | None = None
    batch_pause: int | None = None


def resolve_patch_options(raw: RawPatchInputs) -> PatchOptions:
    """Validate CLI inputs and fill gaps from the environment."""
    environment = validate_environment(raw.environment)
    target = parse_target(raw.deployment)
    atlantis_path = resolve_input(
        raw.atlantis_path,
        InputResolution(env_key="ATLANTIS_PATH", default=Path("."), as_path=True),
    )
    return PatchOptions(
        environment=environment,
        atlantis_path=Path(atlantis_path),
        dry_run=raw.dry_run,
        only_missing=raw.only_missing,
        target=target,
        rollout=resolve_rollout_settings(
            timeout=raw.rollout_timeout,
            batch_size=raw.batch_size,
            pause=raw.batch_pause,
        ),
    )


@app.default
def main(
    environment: Environment,
    *,
    dry_run: Annotated[
        bool, Parameter(help="Show what would be changed without making modifications.")
    ] = False,
    deployment: Annotated[
        str | None, Parameter(help="Target a single deployment as namespace/deployment.")
    ] = None,
    only_missing: Annotated[
        bool, Parameter(help="Only report deployments needing a patch (dry run).")
    ] = False,
    atlantis_path: Annotated[
        Path | None, Parameter(help="Directory containing the atlantis-* checkouts.")
    ] = None,
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
    """Patch Deployment node affinity and tolerations across both clusters."""
    options = resolve_patch_options(
        RawPatchInputs(
            environment=environment,
            dry_run=dry_run,
            deployment=deployment,
            only_missing=only_missing,
            atlantis_path=atlantis_path,
            rollout_timeout=rollout_timeout,
            batch_size=batch_size,
            batch_pause=batch_pause,
        )
    )

    print_header(
        "Kubernetes Deployment Patcher",
        options.environment,
        dry_run=options.dry_run,
        dry_run_note="showing deployment workload-types only",
        atlantis_path=options.atlantis_path,
        target=options.target,
    )

    if not options.dry_run and not yes:
        if not confirm("Proceed with patching all deployments in both clusters?"):
            print("Aborted.")
            return 1

    try:
        run_patch_all(options)
    except AffinityToolError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    print_footer()
    return 0


if __name__ == "__main__":  # pragma: no cover - CLI entrypoint
    raise SystemExit(app())
