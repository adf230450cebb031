"""
Data models for project state.

Plain records with no workflow behavior. ``to_dict`` produces the canonical
document shape (fixed key order, unset optional fields omitted rather than
written as null, empty metadata omitted); ``from_dict`` reverses it.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from phasekit.lib.constants import DEPENDENCIES_KEY


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def format_ts(value: datetime) -> str:
    return value.isoformat()


def parse_ts(value: str) -> datetime:
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return datetime.fromisoformat(value)


def _opt_ts(data: dict, key: str) -> Optional[datetime]:
    value = data.get(key)
    return parse_ts(value) if value is not None else None


@dataclass
class Artifact:
    """An approvable work product attached to a phase or task.

    Only ``approved`` and ``metadata`` change after creation.
    """
    type: str                                   # design, review, pr_body, ...
    path: str                                   # relative path, unique per collection
    created_at: datetime = field(default_factory=utcnow)
    approved: bool = False
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        data = {
            "type": self.type,
            "path": self.path,
            "approved": self.approved,
            "created_at": format_ts(self.created_at),
        }
        if self.metadata:
            data["metadata"] = dict(self.metadata)
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Artifact":
        return cls(
            type=data["type"],
            path=data["path"],
            approved=data.get("approved", False),
            created_at=parse_ts(data["created_at"]),
            metadata=dict(data.get("metadata") or {}),
        )


@dataclass
class Task:
    """A discrete unit of work inside a phase."""
    id: str                                     # "010", "020", ... gap-numbered
    name: str
    phase: str
    status: str = "pending"                     # pending, in_progress, needs_review, completed, abandoned
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    iteration: int = 1
    assigned_agent: Optional[str] = None
    inputs: list[Artifact] = field(default_factory=list)
    outputs: list[Artifact] = field(default_factory=list)
    references: list[Artifact] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def dependencies(self) -> list[str]:
        return list(self.metadata.get(DEPENDENCIES_KEY) or [])

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "name": self.name,
            "phase": self.phase,
            "status": self.status,
            "created_at": format_ts(self.created_at),
            "updated_at": format_ts(self.updated_at),
        }
        if self.started_at is not None:
            data["started_at"] = format_ts(self.started_at)
        if self.completed_at is not None:
            data["completed_at"] = format_ts(self.completed_at)
        data["iteration"] = self.iteration
        if self.assigned_agent is not None:
            data["assigned_agent"] = self.assigned_agent
        data["inputs"] = [a.to_dict() for a in self.inputs]
        data["outputs"] = [a.to_dict() for a in self.outputs]
        data["references"] = [a.to_dict() for a in self.references]
        if self.metadata:
            data["metadata"] = dict(self.metadata)
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Task":
        return cls(
            id=data["id"],
            name=data["name"],
            phase=data["phase"],
            status=data["status"],
            created_at=parse_ts(data["created_at"]),
            updated_at=parse_ts(data["updated_at"]),
            started_at=_opt_ts(data, "started_at"),
            completed_at=_opt_ts(data, "completed_at"),
            iteration=data.get("iteration", 1),
            assigned_agent=data.get("assigned_agent"),
            inputs=[Artifact.from_dict(a) for a in data.get("inputs") or []],
            outputs=[Artifact.from_dict(a) for a in data.get("outputs") or []],
            references=[Artifact.from_dict(a) for a in data.get("references") or []],
            metadata=dict(data.get("metadata") or {}),
        )


@dataclass
class Phase:
    """One stage of a workflow with its own artifacts and tasks."""
    status: str = "pending"                     # workflow-defined subset of PHASE_STATUSES
    enabled: bool = False
    created_at: datetime = field(default_factory=utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None
    iteration: int = 0                          # rework loops
    inputs: list[Artifact] = field(default_factory=list)
    outputs: list[Artifact] = field(default_factory=list)
    tasks: list[Task] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        data = {
            "status": self.status,
            "enabled": self.enabled,
            "created_at": format_ts(self.created_at),
        }
        for key in ("started_at", "completed_at", "failed_at"):
            value = getattr(self, key)
            if value is not None:
                data[key] = format_ts(value)
        data["iteration"] = self.iteration
        data["inputs"] = [a.to_dict() for a in self.inputs]
        data["outputs"] = [a.to_dict() for a in self.outputs]
        data["tasks"] = [t.to_dict() for t in self.tasks]
        if self.metadata:
            data["metadata"] = dict(self.metadata)
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Phase":
        return cls(
            status=data["status"],
            enabled=data.get("enabled", False),
            created_at=parse_ts(data["created_at"]),
            started_at=_opt_ts(data, "started_at"),
            completed_at=_opt_ts(data, "completed_at"),
            failed_at=_opt_ts(data, "failed_at"),
            iteration=data.get("iteration", 0),
            inputs=[Artifact.from_dict(a) for a in data.get("inputs") or []],
            outputs=[Artifact.from_dict(a) for a in data.get("outputs") or []],
            tasks=[Task.from_dict(t) for t in data.get("tasks") or []],
            metadata=dict(data.get("metadata") or {}),
        )


@dataclass
class Statechart:
    current_state: str

    def to_dict(self) -> dict:
        return {"current_state": self.current_state}

    @classmethod
    def from_dict(cls, data: dict) -> "Statechart":
        return cls(current_state=data["current_state"])


@dataclass
class Project:
    """Root aggregate: one managed workflow instance, one document on disk."""
    name: str                                   # kebab-case
    type: str                                   # standard, design, exploration, breakdown
    branch: str
    statechart: Statechart
    description: str = ""
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    phases: dict[str, Phase] = field(default_factory=dict)

    @property
    def current_state(self) -> str:
        return self.statechart.current_state

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "type": self.type,
            "branch": self.branch,
            "description": self.description,
            "created_at": format_ts(self.created_at),
            "updated_at": format_ts(self.updated_at),
            "phases": {name: phase.to_dict() for name, phase in self.phases.items()},
            "statechart": self.statechart.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Project":
        return cls(
            name=data["name"],
            type=data["type"],
            branch=data["branch"],
            description=data.get("description", ""),
            created_at=parse_ts(data["created_at"]),
            updated_at=parse_ts(data["updated_at"]),
            phases={name: Phase.from_dict(p) for name, p in (data.get("phases") or {}).items()},
            statechart=Statechart.from_dict(data["statechart"]),
        )
