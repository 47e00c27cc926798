"""Unit tests for rollout checkpoints."""

from __future__ import annotations

import pytest

from atlantis_scripts._affinity_models import DeploymentRef
from atlantis_scripts._rollout_batch import (
    RolloutBatch,
    RolloutSettings,
    resolve_rollout_settings,
    wait_for_rollout,
)


class _Waiter:
    def __init__(self, failing: set[str] | None = None) -> None:
        self.failing = failing or set()
        self.calls: list[tuple[str, str, str, int]] = []

    def __call__(self, context: str, namespace: str, name: str, timeout: int) -> bool:
        self.calls.append((context, namespace, name, timeout))
        return name not in self.failing


def _refs(*names: str) -> list[DeploymentRef]:
    return [DeploymentRef("daily-central1", "billing", name) for name in names]


def test_checkpoint_after_each_full_batch(capsys: pytest.CaptureFixture[str]) -> None:
    waiter = _Waiter()
    sleeps: list[float] = []
    batch = RolloutBatch(
        RolloutSettings(batch_size=2, timeout=45, pause=3),
        waiter=waiter,
        sleep=sleeps.append,
    )

    results = [batch.record(ref) for ref in _refs("a", "b", "c", "d", "e")]

    assert results == [[], [], [], [], []]
    assert [call[2] for call in waiter.calls] == ["a", "b", "c", "d"]
    assert {call[3] for call in waiter.calls} == {45}
    assert sleeps == [3, 3]
    out = capsys.readouterr().out
    assert "Waiting for last batch of deployments to complete rollout..." in out
    assert "Batch complete. Pausing 3 seconds before next batch..." in out


def test_failed_rollout_requires_acknowledgement(capsys: pytest.CaptureFixture[str]) -> None:
    acknowledged: list[bool] = []
    batch = RolloutBatch(
        RolloutSettings(batch_size=1, pause=0),
        waiter=_Waiter(failing={"b"}),
        acknowledge=lambda: acknowledged.append(True),
        sleep=lambda _: None,
    )

    assert batch.record(_refs("a")[0]) == []
    failed = batch.record(_refs("b")[0])

    assert failed == _refs("b")
    assert acknowledged == [True]
    assert "ERROR: Rollout failed for deployment b in namespace billing" in capsys.readouterr().out


def test_wait_for_rollout_uses_default_acknowledgement(no_input: list[str]) -> None:
    ref = _refs("api")[0]

    assert not wait_for_rollout(ref, RolloutSettings(), waiter=_Waiter(failing={"api"}))
    assert no_input == ["Press Enter to continue or Ctrl+C to exit..."]


def test_resolve_rollout_settings_precedence() -> None:
    env = {"ROLLOUT_BATCH_SIZE": "3", "ROLLOUT_TIMEOUT_SECONDS": "120"}

    settings = resolve_rollout_settings(timeout=60, env=env)

    assert settings == RolloutSettings(batch_size=3, timeout=60, pause=10)


def test_resolve_rollout_settings_defaults() -> None:
    assert resolve_rollout_settings(env={}) == RolloutSettings(batch_size=5, timeout=300, pause=10)


@pytest.mark.parametrize(
    "env",
    [{"ROLLOUT_BATCH_SIZE": "0"}, {"ROLLOUT_BATCH_SIZE": "five"}, {"ROLLOUT_TIMEOUT_SECONDS": "-1"}],
)
def test_resolve_rollout_settings_rejects_invalid_values(env: dict[str, str]) -> None:
    with pytest.raises(SystemExit):
        resolve_rollout_settings(env=env)
