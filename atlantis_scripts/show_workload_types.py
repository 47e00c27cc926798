#!/usr/bin/env -S uv run python
# /// script
# requires-python = ">=3.13"
# dependencies = ["cyclopts>=2.9", "plumbum", "python-hcl2"]
# ///
"""Show each Deployment's workload type next to the one atlantis declares."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Annotated

from cyclopts import App, Parameter

from atlantis_scripts._affinity_errors import KubectlCommandError
from atlantis_scripts._affinity_inspect import observe_deployment
from atlantis_scripts._affinity_models import DeploymentRef
from atlantis_scripts._cluster_targets import RULE, cluster_contexts, iter_deployments
from atlantis_scripts._input_resolution import (
    Environment,
    InputResolution,
    resolve_input,
    validate_environment,
)
from atlantis_scripts._kubectl import context_exists
from atlantis_scripts._nodepool_config import resolve_expected_workload_type

app = App(help="Show current Deployment workload types against atlantis declarations.")


@dataclass(frozen=True, slots=True)
class WorkloadTypeRow:
    """One line of the workload type report."""

    ref: DeploymentRef
    current: str | None
    expected: str
    readable: bool = True

    def render(self) -> str:
        """Format the row as printed by the report.

        Examples
        --------
        >>> WorkloadTypeRow(DeploymentRef("c", "ns", "api"), "core", "core").render()
        'ns/api → core ✓'
        """
        if not self.readable:
            return f"{self.ref.qualified_name} ✗ unable to read deployment"
        if not self.current:
            return f"{self.ref.qualified_name} still using legacy label"
        if self.current == self.expected:
            return f"{self.ref.qualified_name} → {self.current} ✓"
        return f"{self.ref.qualified_name} → {self.current} (expected: {self.expected}) ✗"


def collect_workload_types(
    context: str,
    environment: str,
    atlantis_path: Path,
) -> list[WorkloadTypeRow]:
    """Build report rows for every non-system Deployment in *context*."""
    rows: list[WorkloadTypeRow] = []
    for ref in iter_deployments(context, announce_skips=False):
        observed = observe_deployment(ref)
        _, expected = resolve_expected_workload_type(
            atlantis_path, ref.namespace, ref.name, environment
        )
        if observed is None:
            rows.append(WorkloadTypeRow(ref=ref, current=None, expected=expected, readable=False))
            continue
        rows.append(
            WorkloadTypeRow(ref=ref, current=observed.affinity_workload_type, expected=expected)
        )
    return rows


@app.default
def main(
    environment: Environment,
    *,
    atlantis_path: Annotated[
        Path | None, Parameter(help="Directory containing the atlantis-* checkouts.")
    ] = None,
) -> int:
    """Print current and expected workload types for every Deployment."""
    environment = validate_environment(environment)
    repos = Path(
        resolve_input(
            atlantis_path,
            InputResolution(env_key="ATLANTIS_PATH", default=Path("."), as_path=True),
        )
    )

    print("=== Current Workload Types ===")
    print(f"Environment: {environment}")
    print(f"Clusters: {' '.join(cluster_contexts(environment))}")
    print("")

    for context in cluster_contexts(environment):
        print(RULE)
        print(f"Cluster: {context}")
        print(RULE)
        if not context_exists(context):
            print(f"Error: kubectl context '{context}' not found")
            continue
        try:
            rows = collect_workload_types(context, environment, repos)
        except KubectlCommandError as exc:
            print(f"Error: unable to list deployments in {context}: {exc}")
            continue
        for row in rows:
            print(row.render())
        print("")
    return 0


if __name__ == "__main__":  # pragma: no cover - CLI entrypoint
    raise SystemExit(app())
