"""Structured run log for machine-readable flow output.

Records one flow run with metadata, one entry per named step and a
summary verdict.

Usage::

    log = RunLog.from_result(result, run_id='run-abc')
    output = log.to_dict()          # dict suitable for json.dumps
    json_str = log.to_json()        # formatted JSON string
    log.write(Path('evidence/run-abc.json'))
"""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from .orchestrator import FlowResult


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _generate_run_id() -> str:
    return f'run-{uuid.uuid4().hex[:12]}'


@dataclass(frozen=True, slots=True)
class RunLog:
    """Machine-readable log of one flow run.

    Attributes:
        run_id: Unique identifier for this run.
        created_at: ISO-8601 timestamp of log creation.
        flow: The flow result as produced by ``FlowResult.to_run_log``.
        metadata: Optional key-value metadata (service URLs, headed, etc.).
    """

    run_id: str
    created_at: str
    flow: dict[str, Any]
    metadata: dict[str, Any] = field(default_factory=dict)

    @staticmethod
    def from_result(
        result: FlowResult,
        *,
        run_id: str = '',
        metadata: dict[str, Any] | None = None,
    ) -> RunLog:
        return RunLog(
            run_id=run_id or _generate_run_id(),
            created_at=_now_iso(),
            flow=result.to_run_log(),
            metadata=metadata or {},
        )

    @property
    def passed(self) -> bool:
        return self.flow['verdict'] == 'pass'

    @property
    def steps(self) -> list[dict[str, Any]]:
        return self.flow['steps']

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dict."""
        return {
            'run_id': self.run_id,
            'created_at': self.created_at,
            'verdict': self.flow['verdict'],
            'summary': self.flow['summary'],
            'started_at': self.flow['started_at'],
            'finished_at': self.flow['finished_at'],
            'duration_ms': self.flow['duration_ms'],
            'metadata': self.metadata,
            'steps': list(self.steps),
        }

    def to_json(self, *, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)

    def write(self, path: Path) -> Path:
        """Write the run log to a JSON file."""
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.to_json(), encoding='utf-8')
        return path

    def failed_steps(self) -> list[dict[str, Any]]:
        return [s for s in self.steps if s['outcome'] == 'failed']
