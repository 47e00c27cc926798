"""Rollout checkpoints between batches of patched Deployments.

After every ``batch_size`` successful patches the batch waits, one
Deployment at a time, for the last ``batch_size`` rollouts to finish. A
rollout that does not complete stops automatic progress until the operator
acknowledges it, then the batch pauses before the scan resumes.
"""

from __future__ import annotations

import time
from collections import abc as cabc
from collections.abc import Callable
from dataclasses import dataclass, field

from atlantis_scripts._affinity_models import DeploymentRef
from atlantis_scripts._input_resolution import InputResolution, resolve_int_input
from atlantis_scripts._kubectl import DEFAULT_ROLLOUT_TIMEOUT_SECONDS, rollout_status

DEFAULT_BATCH_SIZE = 5
DEFAULT_BATCH_PAUSE_SECONDS = 10

RolloutWaiter = Callable[[str, str, str, int], bool]


def acknowledge_rollout_failure(prompt: str = "Press Enter to continue or Ctrl+C to exit...") -> None:
    """Block until the operator presses Enter."""
    input(prompt)


@dataclass(frozen=True, slots=True)
class RolloutSettings:
    """Tuning for rollout checkpoints.

    Attributes
    ----------
    batch_size
        Successful patches between checkpoints.
    timeout
        Seconds ``kubectl rollout status`` may wait per Deployment.
    pause
        Seconds to sleep after each checkpoint.
    """

    batch_size: int = DEFAULT_BATCH_SIZE
    timeout: int = DEFAULT_ROLLOUT_TIMEOUT_SECONDS
    pause: float = DEFAULT_BATCH_PAUSE_SECONDS


def wait_for_rollout(
    ref: DeploymentRef,
    settings: RolloutSettings,
    *,
    waiter: RolloutWaiter = rollout_status,
    acknowledge: Callable[[], None] = acknowledge_rollout_failure,
    indent: str = "",
) -> bool:
    """Wait for one rollout, asking the operator to acknowledge a failure."""
    print(f"{indent}Waiting for rollout of {ref.name} in namespace {ref.namespace}")
    if waiter(ref.context, ref.namespace, ref.name, settings.timeout):
        return True
    print(f"{indent}ERROR: Rollout failed for deployment {ref.name} in namespace {ref.namespace}")
    print(f"{indent}Pausing script execution. Please investigate before continuing.")
    acknowledge()
    return False


@dataclass(slots=True)
class RolloutBatch:
    """Track patched Deployments and checkpoint their rollouts.

    Examples
    --------
    >>> batch = RolloutBatch(RolloutSettings(batch_size=2), waiter=lambda *_: True,
    ...                      sleep=lambda _: None)
    >>> batch.record(DeploymentRef("c", "ns", "a"))
    []
    """

    settings: RolloutSettings = field(default_factory=RolloutSettings)
    waiter: RolloutWaiter = rollout_status
    acknowledge: Callable[[], None] = acknowledge_rollout_failure
    sleep: Callable[[float], None] = time.sleep
    patched: list[DeploymentRef] = field(default_factory=list)

    def record(self, ref: DeploymentRef) -> list[DeploymentRef]:
        """Record a successful patch; return rollouts that failed at a checkpoint."""
        self.patched.append(ref)
        if len(self.patched) % self.settings.batch_size:
            return []
        return self._checkpoint(self.patched[-self.settings.batch_size :])

    def _checkpoint(self, refs: list[DeploymentRef]) -> list[DeploymentRef]:
        print("Waiting for last batch of deployments to complete rollout...")
        failures = [
            ref
            for ref in refs
            if not wait_for_rollout(
                ref,
                self.settings,
                waiter=self.waiter,
                acknowledge=self.acknowledge,
            )
        ]
        print(f"Batch complete. Pausing {self.settings.pause:g} seconds before next batch...")
        self.sleep(self.settings.pause)
        return failures


def resolve_rollout_settings(
    *,
    timeout: int | None = None,
    batch_size: int | None = None,
    pause: int | None = None,
    env: cabc.Mapping[str, str] | None = None,
) -> RolloutSettings:
    """Resolve rollout tuning from flags, then environment, then defaults."""
    return RolloutSettings(
        batch_size=resolve_int_input(
            batch_size,
            InputResolution(env_key="ROLLOUT_BATCH_SIZE", default=DEFAULT_BATCH_SIZE),
            env=env,
            minimum=1,
        ),
        timeout=resolve_int_input(
            timeout,
            InputResolution(
                env_key="ROLLOUT_TIMEOUT_SECONDS",
                default=DEFAULT_ROLLOUT_TIMEOUT_SECONDS,
            ),
            env=env,
            minimum=1,
        ),
        pause=resolve_int_input(
            pause,
            InputResolution(
                env_key="ROLLOUT_BATCH_PAUSE_SECONDS",
                default=DEFAULT_BATCH_PAUSE_SECONDS,
            ),
            env=env,
        ),
    )
