"""
Run context and directory management for issueflow.
"""

import json
import secrets
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from issueflow.lib.config import WorkflowConfig
from issueflow.lib.store import ArtifactStore
from issueflow.lib.types import ArtifactRef, AuditEntry, Collaborators
from issueflow.lib.validate import validate_before_write


@dataclass
class RunContext:
    """Context for a single run of one issue."""
    run_id: str
    run_dir: Path
    issue_id: str
    config: WorkflowConfig
    store: ArtifactStore
    collaborators: Collaborators
    max_fix_attempts: int
    start_time: datetime = field(default_factory=datetime.now)
    phases: dict = field(default_factory=dict)
    audit: list[AuditEntry] = field(default_factory=list)

    @classmethod
    def create(cls, config: WorkflowConfig, store: ArtifactStore, collaborators: Collaborators,
               issue_id: str, max_fix_attempts: int | None = None) -> 'RunContext':
        """Create a new run context with a fresh run directory."""
        timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
        run_id = f"{timestamp}_{issue_id}_{secrets.token_hex(3)}"

        run_dir = config.state_dir / "runs" / run_id
        run_dir.mkdir(parents=True, exist_ok=True)
        (run_dir / "phases").mkdir(exist_ok=True)

        return cls(
            run_id=run_id,
            run_dir=run_dir,
            issue_id=issue_id,
            config=config,
            store=store,
            collaborators=collaborators,
            max_fix_attempts=config.max_fix_attempts if max_fix_attempts is None else max_fix_attempts,
        )

    def log(self, message: str):
        """Append to run log."""
        timestamp = datetime.now().isoformat()
        with open(self.run_dir / "run.log", "a") as f:
            f.write(f"[{timestamp}] {message}\n")

    def record_phase(self, phase: str, status: str, duration: float, notes: str = ""):
        """Record phase result. A phase re-run in the same run keeps its last result."""
        self.phases[phase] = {
            "status": status,
            "duration_seconds": duration,
            "notes": notes,
        }

    def record_transition(self, phase: str, resulting_status: str) -> AuditEntry:
        """Append an audit entry for a successful phase."""
        entry = AuditEntry(
            phase=phase,
            timestamp=datetime.now().isoformat(),
            resulting_status=resulting_status,
        )
        self.audit.append(entry)
        self.log(f"Audit: {phase} -> {resulting_status}")
        return entry

    def write_run_file(self, name: str, content: str) -> ArtifactRef:
        """Write a report or transcript under phases/ and return a ref to it."""
        path = self.run_dir / "phases" / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
        return ArtifactRef(name=path.stem, path=path)

    def artifact_refs(self, *names: str) -> list[ArtifactRef]:
        """Refs for the named artifacts that exist in the active root, in the given order."""
        refs = []
        for name in names:
            path = self.store.artifact_path(self.issue_id, name)
            if path.is_file():
                refs.append(ArtifactRef(name=name, path=path))
        return refs

    def write_result(self, outcome: str, final_status: str | None = None, archived: bool = False,
                     failed_phase: str | None = None, error: str | None = None):
        """Write result.json."""
        end_time = datetime.now()
        duration = (end_time - self.start_time).total_seconds()

        result = {
            "version": 1,
            "issue": self.issue_id,
            "run_id": self.run_id,
            "outcome": outcome,
            "final_status": final_status,
            "archived": archived,
            "timestamps": {
                "started": self.start_time.isoformat(),
                "ended": end_time.isoformat(),
                "duration_seconds": duration,
            },
            "phases": self.phases,
            "audit": [entry.to_dict() for entry in self.audit],
        }

        if failed_phase:
            result["failed_phase"] = failed_phase
        if error:
            result["error"] = error

        result_path = self.run_dir / "result.json"
        validate_before_write(result, "result", result_path)
        result_path.write_text(json.dumps(result, indent=2))
