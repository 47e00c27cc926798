"""Unit tests for reading live Deployment scheduling."""

from __future__ import annotations

import logging

import pytest
from conftest import FakeCluster, make_deployment

from atlantis_scripts._affinity_inspect import (
    inspect_deployment,
    is_spot_toleration,
    observe_deployment,
)
from atlantis_scripts._affinity_models import DeploymentRef


def _with_node_affinity(node_affinity: dict[str, object]) -> dict[str, object]:
    return {"spec": {"template": {"spec": {"affinity": {"nodeAffinity": node_affinity}}}}}


def test_inspect_reads_workload_type_facets() -> None:
    deployment = make_deployment(
        "billing", "api", workload_type="gpu", toleration="gpu", spot_preference=True
    )

    observed = inspect_deployment(deployment)

    assert observed.affinity_workload_type == "gpu"
    assert observed.toleration_workload_type == "gpu"
    assert observed.has_spot_affinity
    assert not observed.has_spot_toleration


def test_inspect_bare_deployment() -> None:
    observed = inspect_deployment(make_deployment("billing", "api"))

    assert observed.affinity_workload_type is None
    assert observed.toleration_workload_type is None
    assert not observed.has_workload_type_affinity
    assert not observed.has_spot_affinity
    assert observed.tolerations == ()


def test_inspect_tolerates_empty_objects() -> None:
    assert not inspect_deployment({}).has_workload_type_affinity
    assert not inspect_deployment({"spec": None}).has_spot_toleration


def test_affinity_without_values_is_present_but_empty() -> None:
    observed = inspect_deployment(
        _with_node_affinity(
            {
                "requiredDuringSchedulingIgnoredDuringExecution": {
                    "nodeSelectorTerms": [
                        {"matchExpressions": [{"key": "workload-type", "operator": "Exists"}]}
                    ]
                }
            }
        )
    )

    assert observed.affinity_workload_type == ""
    assert observed.has_workload_type_affinity


@pytest.mark.parametrize(
    "expression",
    [
        {"key": "cloud.google.com/gke-provisioning", "operator": "In", "values": ["spot"]},
        {"key": "workload-type", "operator": "In", "values": ["spot"]},
        {"key": "cloud.google.com/gke-spot", "operator": "In", "values": ["true"]},
    ],
)
def test_preferred_spot_hints(expression: dict[str, object]) -> None:
    observed = inspect_deployment(
        _with_node_affinity(
            {
                "preferredDuringSchedulingIgnoredDuringExecution": [
                    {"weight": 50, "preference": {"matchExpressions": [expression]}}
                ]
            }
        )
    )

    assert observed.has_spot_affinity


def test_required_provisioning_spot_counts_as_spot_affinity() -> None:
    observed = inspect_deployment(
        _with_node_affinity(
            {
                "requiredDuringSchedulingIgnoredDuringExecution": {
                    "nodeSelectorTerms": [
                        {
                            "matchExpressions": [
                                {
                                    "key": "cloud.google.com/gke-provisioning",
                                    "operator": "In",
                                    "values": ["spot"],
                                }
                            ]
                        }
                    ]
                }
            }
        )
    )

    assert observed.has_spot_affinity
    assert observed.affinity_workload_type is None


def test_preferred_standard_provisioning_is_not_spot() -> None:
    observed = inspect_deployment(
        _with_node_affinity(
            {
                "preferredDuringSchedulingIgnoredDuringExecution": [
                    {
                        "weight": 10,
                        "preference": {
                            "matchExpressions": [
                                {
                                    "key": "cloud.google.com/gke-provisioning",
                                    "operator": "In",
                                    "values": ["standard"],
                                }
                            ]
                        },
                    }
                ]
            }
        )
    )

    assert not observed.has_spot_affinity


@pytest.mark.parametrize(
    ("toleration", "expected"),
    [
        (
            {
                "key": "cloud.google.com/gke-spot",
                "operator": "Equal",
                "value": "true",
                "effect": "NoSchedule",
            },
            True,
        ),
        ({"key": "cloud.google.com/gke-spot", "operator": "Exists"}, False),
        (
            {
                "key": "cloud.google.com/gke-spot",
                "operator": "Equal",
                "value": "true",
                "effect": "NoExecute",
            },
            False,
        ),
    ],
)
def test_is_spot_toleration(toleration: dict[str, str], expected: bool) -> None:
    assert is_spot_toleration(toleration) is expected


def test_observe_deployment_returns_none_when_unreadable(
    fake_cluster: FakeCluster, caplog: pytest.LogCaptureFixture
) -> None:
    fake_cluster.add("daily-central1", "billing", "api", workload_type="core")
    fake_cluster.unreadable.add("billing/api")

    with caplog.at_level(logging.WARNING):
        observed = observe_deployment(DeploymentRef("daily-central1", "billing", "api"))

    assert observed is None
    assert "billing/api" in caplog.text
