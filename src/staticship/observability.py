"""Structured run log for the publish pipeline.

Every record carries ``level``, ``operation``, ``state`` and ``stage``.
State-machine transitions are first-class records with ``outcome`` and
``detail`` keys so a run can be replayed from its log alone. Fields bound
with :meth:`StructuredLogger.bind` (the resolved commit, for instance) are
copied into every later record under ``run``.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

TRANSITION_OPERATION = "transition"


@dataclass(slots=True)
class StructuredLogger:
    records: list[dict[str, Any]] = field(default_factory=list)
    bound: dict[str, Any] = field(default_factory=dict)

    def bind(self, **fields: Any) -> None:
        self.bound.update(fields)

    def log(
        self,
        *,
        operation: str,
        state: str | None,
        stage: str | None,
        message: str,
        level: str = "info",
        extra: dict[str, Any] | None = None,
    ) -> None:
        record: dict[str, Any] = {
            "level": level,
            "operation": operation,
            "state": state,
            "stage": stage,
            "message": message,
        }
        if extra is not None:
            record["extra"] = extra
        self._append(record)

    def transition(self, *, state: str, outcome: str, detail: str = "") -> None:
        record: dict[str, Any] = {
            "level": "error" if outcome == "failed" else "info",
            "operation": TRANSITION_OPERATION,
            "state": state,
            "stage": None,
            "message": f"{state} {outcome}.",
            "outcome": outcome,
        }
        if detail:
            record["detail"] = detail
        self._append(record)

    def transitions(self) -> list[tuple[str, str]]:
        """``(state, outcome)`` pairs in the order the run went through them."""
        return [
            (record["state"], record["outcome"])
            for record in self.records
            if record["operation"] == TRANSITION_OPERATION and "outcome" in record
        ]

    def last_state(self) -> str | None:
        pairs = self.transitions()
        return pairs[-1][0] if pairs else None

    def records_for_state(self, state: str) -> list[dict[str, Any]]:
        return [record for record in self.records if record.get("state") == state]

    def records_for_stage(self, stage: str) -> list[dict[str, Any]]:
        return [record for record in self.records if record.get("stage") == stage]

    def errors(self) -> list[dict[str, Any]]:
        return [record for record in self.records if record.get("level") == "error"]

    def to_json_lines(self, path: str | Path) -> Path:
        output_path = Path(path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        lines = [json.dumps(record, sort_keys=True) for record in self.records]
        output_path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        return output_path

    def _append(self, record: dict[str, Any]) -> None:
        if self.bound:
            record["run"] = dict(self.bound)
        self.records.append(record)
