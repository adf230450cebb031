"""Project type configuration: one workflow definition per project type.

A ProjectTypeConfig wires the data model, the guard library and the state
machine engine into a concrete workflow. It owns:

- the phases (start/end states, allowed artifact types, task support,
  metadata schema),
- the transition table, including branch points and advance determiners,
- automatic phase status updates around transitions,
- the initializer that lays out phases for a new project,
- per-state prompt template names and the read-only prompt context.

Workflows are declared with ProjectTypeConfigBuilder; see phasekit.projects.
"""

import copy
import logging
from dataclasses import dataclass, field, fields, is_dataclass
from types import MappingProxyType
from typing import Any, Callable, Iterable, Mapping, Optional, Union

from phasekit.lib import depgraph
from phasekit.lib.validate import SchemaViolation, validate_against
from phasekit.state import operations
from phasekit.state.models import Artifact, Phase, Project, Task
from phasekit.workflow.fsm import (
    Action,
    ActionFailed,
    AmbiguousOrNoTransition,
    ConfigurationError,
    Guard,
    MachineBuilder,
    StateMachine,
    TransitionResult,
    as_guard,
)

logger = logging.getLogger(__name__)

Initializer = Callable[[Project], None]
Determiner = Callable[[Project], Optional[str]]
TaskCompletionHook = Callable[[Project, str, Task], None]


@dataclass
class PhaseConfig:
    name: str
    start_state: Optional[str] = None
    end_state: Optional[str] = None
    inputs: list[str] = field(default_factory=list)     # allowed input types; empty = any
    outputs: list[str] = field(default_factory=list)    # allowed output types; empty = any
    supports_tasks: bool = False
    metadata_schema: Optional[dict] = None


@dataclass
class TransitionConfig:
    source: str
    dest: str
    event: str
    guard: Optional[Guard] = None
    on_entry: list[Action] = field(default_factory=list)
    on_exit: list[Action] = field(default_factory=list)
    failed_phase: Optional[str] = None
    description: str = ""


@dataclass(frozen=True)
class When:
    """One arm of a branch: discriminator value -> event -> destination."""
    value: Any
    event: str
    dest: str
    description: str = ""
    on_entry: tuple = ()
    failed_phase: Optional[str] = None


def _as_list(actions: Union[Action, Iterable[Action], None]) -> list[Action]:
    if actions is None:
        return []
    if callable(actions):
        return [actions]
    return list(actions)


def _restore(target: Any, snapshot: Any) -> None:
    """Write snapshot values back into target, keeping target's nested objects."""
    for f in fields(target):
        setattr(target, f.name, _restored(getattr(target, f.name), getattr(snapshot, f.name)))


def _restored(current: Any, saved: Any) -> Any:
    if is_dataclass(current) and type(current) is type(saved):
        _restore(current, saved)
        return current
    if isinstance(current, list) and isinstance(saved, list):
        kept = [_restored(c, s) for c, s in zip(current, saved)]
        current[:] = kept + saved[len(kept):]
        return current
    if isinstance(current, dict) and isinstance(saved, dict):
        kept = {k: _restored(current[k], v) if k in current else v for k, v in saved.items()}
        current.clear()
        current.update(kept)
        return current
    return saved


class ProjectMachine:
    """A StateMachine bound to one project, with phase bookkeeping."""

    def __init__(self, config: "ProjectTypeConfig", project: Project):
        self.config = config
        self.project = project
        self.engine: StateMachine = config.machine_builder().build(
            project.statechart.current_state, context=project, name=project.name,
        )

    @property
    def state(self) -> str:
        return self.engine.state

    def can_fire(self, event: str) -> bool:
        return self.engine.can_fire(event)

    def permitted_events(self) -> set[str]:
        return self.engine.permitted_events()

    def blocking_guards(self, event: str) -> list[str]:
        return self.engine.blocking_guards(event)

    def fire(self, event: str) -> TransitionResult:
        """Fire event, update phase statuses and sync the statechart.

        On any failure the project and the machine position are exactly as
        they were before the call. A refused event runs no action, so the
        project is left untouched; after a failed action or phase update the
        saved values are written back into the existing objects.
        """
        snapshot = copy.deepcopy(self.project)
        source = self.engine.state
        try:
            result = self.engine.fire(event)
        except ActionFailed:
            self._rollback(snapshot, source)
            raise

        try:
            self._apply_phase_updates(result)
        except Exception:
            self._rollback(snapshot, source)
            raise

        self.project.statechart.current_state = result.dest
        return result

    def _rollback(self, snapshot: Project, source: str) -> None:
        _restore(self.project, snapshot)
        if self.engine.state != source:
            self.engine.machine.set_state(source, model=self.engine)

    def advance(self) -> TransitionResult:
        """Fire the one event that can currently succeed.

        When several can, a determiner registered for the state picks one.

        Raises:
            AmbiguousOrNoTransition: nothing, or more than one thing, to fire
        """
        state = self.state
        permitted = sorted(self.permitted_events())

        if len(permitted) == 1:
            return self.fire(permitted[0])

        if len(permitted) > 1:
            event = self.config.determine_event(self.project, state)
            if event in permitted:
                logger.debug(f"Determiner for {state} chose {event}")
                return self.fire(event)
            raise AmbiguousOrNoTransition(state, permitted)

        blocking = {event: self.blocking_guards(event) for event in self.engine.events()}
        raise AmbiguousOrNoTransition(state, [], {e: g for e, g in blocking.items() if g})

    def _apply_phase_updates(self, result: TransitionResult) -> None:
        if result.source == result.dest:
            return
        spec = self.config.find_transition(result.source, result.event, result.dest)
        failed_phase = spec.failed_phase if spec else None

        if failed_phase and failed_phase in self.project.phases:
            operations.mark_phase_failed(self.project.phases[failed_phase])

        for phase_config in self.config.phases.values():
            phase = self.project.phases.get(phase_config.name)
            if phase is None:
                continue
            if phase_config.end_state == result.source and phase_config.name != failed_phase:
                operations.mark_phase_completed(phase)
            if phase_config.start_state == result.dest and phase.status in ("pending", "failed"):
                operations.mark_phase_in_progress(phase)


class ProjectTypeConfig:
    """Immutable description of one workflow type. Build with ProjectTypeConfigBuilder."""

    def __init__(
        self,
        name: str,
        description: str,
        phases: dict[str, PhaseConfig],
        initial_state: str,
        transitions: list[TransitionConfig],
        determiners: dict[str, Determiner],
        prompts: dict[str, str],
        initializer: Optional[Initializer],
        task_hook: Optional[TaskCompletionHook],
        cleanup_state: Optional[str],
        init_event: Optional[str],
    ):
        self.name = name
        self.description = description
        self.phases = phases
        self.initial_state = initial_state
        self.transitions = transitions
        self.determiners = determiners
        self.prompts = prompts
        self.initializer = initializer
        self.task_hook = task_hook
        self.cleanup_state = cleanup_state
        self.init_event = init_event

    def __repr__(self) -> str:
        return f"ProjectTypeConfig({self.name!r}, {len(self.phases)} phases, {len(self.transitions)} transitions)"

    # -- machine --------------------------------------------------------------

    def machine_builder(self) -> MachineBuilder:
        builder = MachineBuilder()
        builder.add_state(self.initial_state)
        for t in self.transitions:
            builder.add_transition(
                t.source, t.dest, t.event,
                guard=t.guard, on_entry=t.on_entry, on_exit=t.on_exit,
                description=t.description,
            )
        return builder

    def build_machine(self, project: Project) -> ProjectMachine:
        return ProjectMachine(self, project)

    @property
    def states(self) -> list[str]:
        return self.machine_builder().states

    def find_transition(self, source: str, event: str, dest: str) -> Optional[TransitionConfig]:
        for t in self.transitions:
            if t.source == source and t.event == event and t.dest == dest:
                return t
        return None

    def available_transitions(self, state: str) -> list[TransitionConfig]:
        """Declared transitions from state, sorted by event name."""
        return sorted((t for t in self.transitions if t.source == state), key=lambda t: t.event)

    def determine_event(self, project: Project, state: str) -> Optional[str]:
        determiner = self.determiners.get(state)
        if determiner is None:
            return None
        try:
            return determiner(project)
        except Exception as e:
            logger.warning(f"Advance determiner for {self.name}/{state} raised {type(e).__name__}: {e}")
            return None

    # -- phases ---------------------------------------------------------------

    def phase_for_state(self, state: str) -> Optional[str]:
        for phase in self.phases.values():
            if state in (phase.start_state, phase.end_state):
                return phase.name
        return None

    def is_phase_start_state(self, state: str) -> Optional[str]:
        for phase in self.phases.values():
            if phase.start_state == state:
                return phase.name
        return None

    def task_phases(self) -> list[str]:
        return sorted(name for name, phase in self.phases.items() if phase.supports_tasks)

    def default_task_phase(self, state: str) -> Optional[str]:
        """Phase new tasks go to when none is named: the current phase, if it takes tasks."""
        name = self.phase_for_state(state)
        if name and self.phases[name].supports_tasks:
            return name
        task_phases = self.task_phases()
        return task_phases[0] if len(task_phases) == 1 else None

    def check_artifact_type(self, phase_name: str, artifact_type: str, collection: str = "outputs") -> None:
        """Raise SchemaViolation if the phase doesn't accept the artifact type."""
        phase = self.phases.get(phase_name)
        if phase is None:
            raise SchemaViolation(self.name, f"unknown phase '{phase_name}'", f"phases.{phase_name}")
        allowed = phase.inputs if collection == "inputs" else phase.outputs
        if allowed and artifact_type not in allowed:
            raise SchemaViolation(
                self.name,
                f"artifact type '{artifact_type}' not allowed in {phase_name} {collection} "
                f"(allowed: {', '.join(allowed)})",
                f"phases.{phase_name}.{collection}",
            )

    # -- lifecycle ------------------------------------------------------------

    def initialize(self, project: Project, initial_inputs: Optional[Mapping[str, list]] = None) -> None:
        """Lay out phases for a new project and run the type's initializer."""
        for name in self.phases:
            project.phases.setdefault(name, Phase(created_at=project.created_at))

        for phase_name, items in (initial_inputs or {}).items():
            phase = operations.get_phase(project, phase_name)
            for item in items:
                if isinstance(item, Artifact):
                    artifact_type, path = item.type, item.path
                else:
                    artifact_type, path = item["type"], item["path"]
                self.check_artifact_type(phase_name, artifact_type, "inputs")
                operations.add_artifact(phase, artifact_type, path, collection="inputs")

        if self.initializer:
            self.initializer(project)

        phase_name = self.is_phase_start_state(project.statechart.current_state)
        if phase_name and project.phases[phase_name].status == "pending":
            operations.mark_phase_in_progress(project.phases[phase_name])

    def validate(self, project: Project) -> None:
        """Check a loaded project against this workflow's rules.

        Raises:
            SchemaViolation: unknown state or phase, disallowed artifact
                type, metadata not matching the phase schema, tasks in a
                phase without task support, or an invalid task graph
        """
        if project.statechart.current_state not in self.states:
            raise SchemaViolation(
                self.name,
                f"state '{project.statechart.current_state}' is not part of the {self.name} workflow",
                "statechart.current_state",
            )

        for name, phase in project.phases.items():
            phase_config = self.phases.get(name)
            if phase_config is None:
                raise SchemaViolation(self.name, f"unknown phase '{name}'", f"phases.{name}")

            for collection in ("inputs", "outputs"):
                for i, artifact in enumerate(getattr(phase, collection)):
                    try:
                        self.check_artifact_type(name, artifact.type, collection)
                    except SchemaViolation as e:
                        raise SchemaViolation(self.name, e.message, f"phases.{name}.{collection}.{i}.type") from None

            if phase_config.metadata_schema and phase.metadata:
                validate_against(phase.metadata, phase_config.metadata_schema, self.name, f"phases.{name}.metadata")

            if phase.tasks and not phase_config.supports_tasks:
                raise SchemaViolation(self.name, f"phase '{name}' does not support tasks", f"phases.{name}.tasks")
            try:
                depgraph.validate_acyclic(phase.tasks)
            except depgraph.DependencyError as e:
                raise SchemaViolation(self.name, str(e), f"phases.{name}.tasks") from None

    def update_task_status(self, project: Project, phase_name: str, task_id: str, status: str) -> Task:
        """Move a task, running the type's completion hook before completing it."""
        phase = operations.get_phase(project, phase_name)
        task = operations.find_task(phase, task_id)
        if task is None:
            raise operations.NotFoundError(f"Task {task_id} not found in phase '{phase_name}'")

        if status == "completed" and task.status != "completed" and self.task_hook:
            # Check the move first so the hook never runs for a refused move.
            trial = copy.deepcopy(task)
            operations.set_task_status(trial, status)
            self.task_hook(project, phase_name, task)

        return operations.set_task_status(task, status)

    # -- prompts --------------------------------------------------------------

    def prompt_template(self, state: str) -> Optional[str]:
        return self.prompts.get(state)

    def prompt_context(self, project: Project) -> Mapping[str, Any]:
        """Read-only projection of the project for prompt templates."""
        state = project.statechart.current_state
        phase_name = self.phase_for_state(state) or ""
        phase = project.phases.get(phase_name)

        tasks = phase.tasks if phase else []
        task_lines = [f"- [{t.status}] {t.id} {t.name}" for t in tasks]
        artifact_lines = [
            f"- {a.type}: {a.path}" + (" (approved)" if a.approved else "")
            for a in (phase.outputs if phase else [])
        ]
        input_lines = [f"- {a.type}: {a.path}" for a in (phase.inputs if phase else [])]

        return MappingProxyType({
            "project_name": project.name,
            "project_type": project.type,
            "branch": project.branch,
            "description": project.description or "(no description)",
            "state": state,
            "phase": phase_name or "(none)",
            "phase_status": phase.status if phase else "",
            "iteration": phase.iteration if phase else 0,
            "task_count": len(tasks),
            "pending_tasks": sum(1 for t in tasks if t.status not in ("completed", "abandoned")),
            "tasks": "\n".join(task_lines) or "(no tasks)",
            "outputs": "\n".join(artifact_lines) or "(no outputs)",
            "inputs": "\n".join(input_lines) or "(no inputs)",
        })


class ProjectTypeConfigBuilder:
    """Fluent declaration of a workflow type."""

    def __init__(self, name: str, description: str = ""):
        self.name = name
        self.description = description
        self._phases: dict[str, PhaseConfig] = {}
        self._initial_state: Optional[str] = None
        self._transitions: list[TransitionConfig] = []
        self._determiners: dict[str, Determiner] = {}
        self._prompts: dict[str, str] = {}
        self._initializer: Optional[Initializer] = None
        self._task_hook: Optional[TaskCompletionHook] = None
        self._cleanup_state: Optional[str] = None
        self._init_event: Optional[str] = None
        self._issues: list[str] = []

    def with_phase(
        self,
        name: str,
        start_state: Optional[str] = None,
        end_state: Optional[str] = None,
        inputs: Iterable[str] = (),
        outputs: Iterable[str] = (),
        tasks: bool = False,
        metadata_schema: Optional[dict] = None,
    ) -> "ProjectTypeConfigBuilder":
        if name in self._phases:
            self._issues.append(f"phase '{name}' declared twice")
        self._phases[name] = PhaseConfig(
            name=name,
            start_state=start_state,
            end_state=end_state,
            inputs=list(inputs),
            outputs=list(outputs),
            supports_tasks=tasks,
            metadata_schema=metadata_schema,
        )
        return self

    def set_initial_state(self, state: str) -> "ProjectTypeConfigBuilder":
        self._initial_state = state
        return self

    def add_transition(
        self,
        source: str,
        dest: str,
        event: str,
        guard: Union[Guard, Callable[[Project], bool], None] = None,
        on_entry: Union[Action, Iterable[Action], None] = None,
        on_exit: Union[Action, Iterable[Action], None] = None,
        failed_phase: Optional[str] = None,
        description: str = "",
    ) -> "ProjectTypeConfigBuilder":
        self._transitions.append(TransitionConfig(
            source=source,
            dest=dest,
            event=event,
            guard=as_guard(guard),
            on_entry=_as_list(on_entry),
            on_exit=_as_list(on_exit),
            failed_phase=failed_phase,
            description=description,
        ))
        return self

    def add_branch(
        self,
        source: str,
        discriminator: Callable[[Project], Any],
        *paths: When,
        label: str = "",
    ) -> "ProjectTypeConfigBuilder":
        """Route from source on the value of discriminator(project).

        Each When becomes a transition guarded by "discriminator == value",
        and advance() from source fires the event of the matching arm.
        """
        label = label or getattr(discriminator, "__name__", "value")

        def matches(value):
            def check(project):
                return discriminator(project) == value
            return check

        for path in paths:
            self.add_transition(
                source, path.dest, path.event,
                guard=Guard(path.description or f"{label} is {path.value!r}", matches(path.value)),
                on_entry=list(path.on_entry),
                failed_phase=path.failed_phase,
                description=path.description,
            )

        events = {path.value: path.event for path in paths}

        def determine(project):
            return events.get(discriminator(project))

        return self.on_advance(source, determine)

    def on_advance(self, state: str, determiner: Determiner) -> "ProjectTypeConfigBuilder":
        if state in self._determiners:
            self._issues.append(f"advance determiner for '{state}' declared twice")
        self._determiners[state] = determiner
        return self

    def with_prompt(self, state: str, template: str) -> "ProjectTypeConfigBuilder":
        self._prompts[state] = template
        return self

    def with_initializer(self, initializer: Initializer) -> "ProjectTypeConfigBuilder":
        self._initializer = initializer
        return self

    def on_task_completed(self, hook: TaskCompletionHook) -> "ProjectTypeConfigBuilder":
        self._task_hook = hook
        return self

    def with_cleanup_state(self, state: str) -> "ProjectTypeConfigBuilder":
        """Reaching state ends the project: its document is deleted instead of saved."""
        self._cleanup_state = state
        return self

    def with_init_event(self, event: str) -> "ProjectTypeConfigBuilder":
        """Event fired right after a new project of this type is created."""
        self._init_event = event
        return self

    def build(self) -> ProjectTypeConfig:
        """Validate and freeze the declarations.

        Raises:
            ConfigurationError: listing every problem found
        """
        issues = list(self._issues)
        if self._initial_state is None:
            issues.append("initial state not set")

        machine = MachineBuilder()
        if self._initial_state:
            machine.add_state(self._initial_state)
        for t in self._transitions:
            machine.add_transition(t.source, t.dest, t.event, guard=t.guard)
        issues.extend(machine.validate(self._initial_state))
        states = set(machine.states)

        for phase in self._phases.values():
            if bool(phase.start_state) != bool(phase.end_state):
                issues.append(f"phase '{phase.name}' needs both a start and an end state")
            for state in (phase.start_state, phase.end_state):
                if state and state not in states:
                    issues.append(f"phase '{phase.name}' references unknown state '{state}'")
        for t in self._transitions:
            if t.failed_phase and t.failed_phase not in self._phases:
                issues.append(f"transition '{t.event}' marks unknown phase '{t.failed_phase}' failed")
        for state in list(self._prompts) + list(self._determiners):
            if state not in states:
                issues.append(f"unknown state '{state}'")
        if self._cleanup_state and self._cleanup_state not in states:
            issues.append(f"cleanup state '{self._cleanup_state}' is not declared")
        if self._init_event and not any(
            t.event == self._init_event and t.source == self._initial_state for t in self._transitions
        ):
            issues.append(f"init event '{self._init_event}' does not leave the initial state")

        if issues:
            raise ConfigurationError([f"{self.name}: {issue}" for issue in issues])

        return ProjectTypeConfig(
            name=self.name,
            description=self.description,
            phases=dict(self._phases),
            initial_state=self._initial_state,
            transitions=list(self._transitions),
            determiners=dict(self._determiners),
            prompts=dict(self._prompts),
            initializer=self._initializer,
            task_hook=self._task_hook,
            cleanup_state=self._cleanup_state,
            init_event=self._init_event,
        )
