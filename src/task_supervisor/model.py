from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Self

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from task_supervisor.control.exceptions import ProtocolError

UNKNOWN_FAILURE = "Task runner reported a failure without a reason"


class TaskResponse(BaseModel):
    """Wire form of the worker's `runTask` response."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool
    data: dict[str, Any] = Field(default_factory=dict)
    benchmark_score_keys: list[str] = Field(
        default_factory=list, alias="benchmarkScoreKeys"
    )
    reason: str | None = None


class TaskResult(BaseModel):
    """
    Outcome of one supervised task run.

    Normally parsed from the response of the worker's run operation, even when
    the task fails. When the worker can no longer be trusted to respond (it
    timed out, crashed or never connected) a failure is synthesized with
    `TaskResult.failure`.
    """

    model_config = ConfigDict(frozen=True)

    succeeded: bool
    """Whether the task succeeded."""

    data: dict[str, Any] = Field(default_factory=dict)
    """Task-specific JSON data."""

    benchmark_score_keys: list[str] = Field(default_factory=list)
    """
    Keys in `data` holding numeric scores for benchmark submission.

    The worker is responsible for only naming keys present in `data`; keys
    that are missing are dropped with a warning when parsing.
    """

    reason: str = ""
    """Explains the failure if `failed`, empty otherwise."""

    @property
    def failed(self) -> bool:
        return not self.succeeded

    @classmethod
    def parse(cls, payload: Any) -> Self:
        """Builds a result from the worker's run operation response."""
        try:
            response = TaskResponse.model_validate(payload)
        except ValidationError as exc:
            raise ProtocolError(f"Malformed task result: {exc}") from exc

        score_keys = [key for key in response.benchmark_score_keys if key in response.data]
        if dropped := set(response.benchmark_score_keys) - set(score_keys):
            logger.warning(
                "Dropping benchmark score keys missing from task data: {}",
                sorted(dropped),
            )

        if response.success:
            reason = ""
        else:
            reason = response.reason or UNKNOWN_FAILURE

        return cls(
            succeeded=response.success,
            data=response.data,
            benchmark_score_keys=score_keys,
            reason=reason,
        )

    @classmethod
    def failure(cls, reason: str) -> Self:
        """Constructs an unsuccessful result."""
        return cls(succeeded=False, reason=reason or UNKNOWN_FAILURE)

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "success": self.succeeded,
            "data": self.data,
            "benchmarkScoreKeys": self.benchmark_score_keys,
        }
        if self.reason:
            payload["reason"] = self.reason
        return payload


def success_payload(data: Mapping[str, Any]) -> dict[str, Any]:
    return {"success": True, "data": dict(data), "benchmarkScoreKeys": []}


def failure_payload(reason: str) -> dict[str, Any]:
    return {"success": False, "data": {}, "reason": reason}
