"""Generic guarded state machine built on the transitions library.

A MachineBuilder collects transition declarations; build() turns them into
a StateMachine pinned at a caller-supplied state. The machine works over a
context object (for phasekit, the Project) that is handed explicitly to
every guard and action, so guards always see live data at call time.

Usage:
    from phasekit.workflow.fsm import Guard, MachineBuilder

    builder = MachineBuilder()
    builder.add_transition("planning", "executing", "approve",
                           guard=Guard("plan approved", lambda p: p.approved))
    machine = builder.build("planning", context=plan)
    if machine.can_fire("approve"):
        machine.fire("approve")

Execution order for a transition: the transition's exit actions, the source
state's exit actions, position update, the destination state's entry
actions, the transition's entry actions. If any action raises, the rest do
not run and the position goes back to the source state before ActionFailed
is raised. Mutations the actions already made to the context are the
caller's to discard; persisting the context is the durability boundary.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Optional, Union

from transitions import Machine

logger = logging.getLogger(__name__)

Action = Callable[[Any], None]


class ConfigurationError(Exception):
    """Transition declarations can't form a valid machine."""

    def __init__(self, issues: list[str]):
        self.issues = issues
        super().__init__("Invalid state machine configuration: " + "; ".join(issues))


class TransitionError(Exception):
    """Base for refused or failed transitions."""

    def __init__(self, state: str, event: Optional[str], message: str):
        self.state = state
        self.event = event
        super().__init__(message)


class NoSuchTransition(TransitionError):
    def __init__(self, state: str, event: str, permitted: list[str]):
        self.permitted = permitted
        allowed = ", ".join(permitted) if permitted else "none"
        super().__init__(
            state, event,
            f"Event '{event}' is not valid from state '{state}' (permitted: {allowed})",
        )


class GuardNotMet(TransitionError):
    def __init__(self, state: str, event: str, guards: list[str]):
        self.guards = guards
        if len(guards) == 1:
            message = f"Guard '{guards[0]}' failed for event '{event}' from state '{state}'"
        else:
            names = ", ".join(f"'{g}'" for g in guards)
            message = f"No guard passed for event '{event}' from state '{state}' (checked: {names})"
        super().__init__(state, event, message)


class AmbiguousTransition(TransitionError):
    def __init__(self, state: str, event: str, destinations: list[str]):
        self.destinations = destinations
        super().__init__(
            state, event,
            f"Event '{event}' from state '{state}' matches several transitions "
            f"({', '.join(destinations)}); guards must not overlap",
        )


class AmbiguousOrNoTransition(TransitionError):
    """advance() found zero or several permitted events."""

    def __init__(self, state: str, permitted: list[str], blocking: Optional[dict[str, list[str]]] = None):
        self.permitted = permitted
        self.blocking = blocking or {}
        if permitted:
            message = (
                f"Cannot advance from state '{state}': several events are permitted "
                f"({', '.join(permitted)}); fire one explicitly"
            )
        elif self.blocking:
            details = "; ".join(
                f"{event} needs {', '.join(repr(g) for g in guards)}"
                for event, guards in self.blocking.items()
            )
            message = f"Cannot advance from state '{state}': {details}"
        else:
            message = f"Cannot advance from state '{state}': no transitions declared"
        super().__init__(state, None, message)


class ActionFailed(TransitionError):
    def __init__(self, state: str, event: str, cause: BaseException):
        self.cause = cause
        super().__init__(
            state, event,
            f"Transition '{event}' from state '{state}' failed in an action: {cause}",
        )


@dataclass(frozen=True)
class Guard:
    """A named predicate over the machine context."""
    description: str
    check: Callable[[Any], bool]

    def __call__(self, context: Any) -> bool:
        return bool(self.check(context))


def as_guard(guard: Union[Guard, Callable[[Any], bool], None]) -> Optional[Guard]:
    if guard is None or isinstance(guard, Guard):
        return guard
    return Guard(getattr(guard, "__name__", "guard"), guard)


def _action_list(actions: Union[Action, Iterable[Action], None]) -> list[Action]:
    if actions is None:
        return []
    if callable(actions):
        return [actions]
    return list(actions)


@dataclass
class TransitionSpec:
    source: str
    dest: str
    event: str
    guard: Optional[Guard] = None
    on_entry: list[Action] = field(default_factory=list)
    on_exit: list[Action] = field(default_factory=list)
    description: str = ""


@dataclass(frozen=True)
class TransitionResult:
    source: str
    dest: str
    event: str


class MachineBuilder:
    """Collects states and transitions before building a StateMachine."""

    def __init__(self):
        self._states: list[str] = []
        self._transitions: list[TransitionSpec] = []
        self._enter_actions: dict[str, list[Action]] = defaultdict(list)
        self._exit_actions: dict[str, list[Action]] = defaultdict(list)

    def _declare(self, state: str) -> None:
        if state not in self._states:
            self._states.append(state)

    def add_state(self, state: str) -> "MachineBuilder":
        self._declare(state)
        return self

    def add_transition(
        self,
        source: str,
        dest: str,
        event: str,
        guard: Union[Guard, Callable[[Any], bool], None] = None,
        on_entry: Union[Action, Iterable[Action], None] = None,
        on_exit: Union[Action, Iterable[Action], None] = None,
        description: str = "",
    ) -> "MachineBuilder":
        """Register source --event--> dest.

        Several transitions may share (source, event) as long as every one
        of them is guarded; the guards must not pass at the same time.
        """
        self._declare(source)
        self._declare(dest)
        self._transitions.append(TransitionSpec(
            source=source,
            dest=dest,
            event=event,
            guard=as_guard(guard),
            on_entry=_action_list(on_entry),
            on_exit=_action_list(on_exit),
            description=description,
        ))
        return self

    def on_enter_state(self, state: str, action: Action) -> "MachineBuilder":
        """Run action on every transition into state."""
        self._declare(state)
        self._enter_actions[state].append(action)
        return self

    def on_exit_state(self, state: str, action: Action) -> "MachineBuilder":
        """Run action on every transition out of state."""
        self._declare(state)
        self._exit_actions[state].append(action)
        return self

    @property
    def states(self) -> list[str]:
        return list(self._states)

    @property
    def transitions(self) -> list[TransitionSpec]:
        return list(self._transitions)

    def validate(self, initial_state: Optional[str] = None) -> list[str]:
        """Return configuration problems; empty when the machine can be built."""
        issues = []
        if not self._transitions:
            issues.append("no transitions declared")
        if initial_state is not None and initial_state not in self._states:
            issues.append(f"initial state '{initial_state}' is not declared")

        groups: dict[tuple[str, str], list[TransitionSpec]] = defaultdict(list)
        for spec in self._transitions:
            groups[(spec.source, spec.event)].append(spec)
            for action in spec.on_entry + spec.on_exit:
                if not callable(action):
                    issues.append(f"non-callable action on {spec.source} --{spec.event}-->")
        for (source, event), specs in groups.items():
            if len(specs) > 1 and any(s.guard is None for s in specs):
                issues.append(
                    f"event '{event}' from '{source}' has {len(specs)} transitions "
                    f"but not all of them are guarded"
                )
        return issues

    def build(self, initial_state: str, context: Any = None, name: str = "machine") -> "StateMachine":
        """Finalize into a StateMachine positioned at initial_state.

        Raises:
            ConfigurationError: see validate()
        """
        issues = self.validate(initial_state)
        if issues:
            raise ConfigurationError(issues)
        return StateMachine(self, initial_state, context, name)


class StateMachine:
    """Runtime half of the engine.

    Wraps transitions.Machine with guard pre-evaluation, actionable errors
    and rollback of the position when an action fails.
    """

    def __init__(self, builder: MachineBuilder, initial_state: str, context: Any, name: str = "machine"):
        self.context = context
        self.name = name
        self._specs = builder.transitions
        self._by_key: dict[tuple[str, str], list[TransitionSpec]] = defaultdict(list)
        for spec in self._specs:
            self._by_key[(spec.source, spec.event)].append(spec)

        states = [
            {
                "name": state,
                "on_enter": [self._bind(a) for a in builder._enter_actions.get(state, [])],
                "on_exit": [self._bind(a) for a in builder._exit_actions.get(state, [])],
            }
            for state in builder.states
        ]

        self.machine = Machine(
            model=self,
            states=states,
            initial=initial_state,
            auto_transitions=False,  # Only explicit transitions
            send_event=True,  # Pass EventData to callbacks
            after_state_change="on_state_change",
        )
        for spec in self._specs:
            self.machine.add_transition(
                trigger=spec.event,
                source=spec.source,
                dest=spec.dest,
                conditions=[self._condition(spec)],
                before=[self._bind(a) for a in spec.on_exit],
                after=[self._bind(a) for a in spec.on_entry],
            )

    def _bind(self, action: Action) -> Callable:
        def callback(event_data):
            action(self.context)
        return callback

    def _condition(self, spec: TransitionSpec) -> Callable:
        def condition(event_data):
            return self._passes(spec)
        return condition

    def _passes(self, spec: TransitionSpec) -> bool:
        if spec.guard is None:
            return True
        try:
            return spec.guard(self.context)
        except Exception as e:
            logger.warning(
                f"[FSM] {self.name}: guard '{spec.guard.description}' raised {type(e).__name__}: {e}"
            )
            return False

    def on_state_change(self, event) -> None:
        """Log every completed transition."""
        logger.info(
            f"[FSM] {self.name}: {event.transition.source} -> {event.transition.dest} ({event.event.name})"
        )

    def transitions_from(self, state: Optional[str] = None) -> list[TransitionSpec]:
        """Declared transitions leaving state (default: the current state)."""
        state = state or self.state
        return [s for s in self._specs if s.source == state]

    def events(self, state: Optional[str] = None) -> list[str]:
        """Declared events from state, in declaration order."""
        return list(dict.fromkeys(s.event for s in self.transitions_from(state)))

    def can_fire(self, event: str) -> bool:
        """True if event would currently succeed. Never mutates, never raises."""
        passing = [s for s in self._by_key.get((self.state, event), []) if self._passes(s)]
        return len(passing) == 1

    def permitted_events(self) -> set[str]:
        return {event for event in self.events() if self.can_fire(event)}

    def blocking_guards(self, event: str) -> list[str]:
        """Descriptions of the guards currently refusing event."""
        return [
            s.guard.description
            for s in self._by_key.get((self.state, event), [])
            if s.guard is not None and not self._passes(s)
        ]

    def fire(self, event: str) -> TransitionResult:
        """Take the single permitted transition for event.

        Raises:
            NoSuchTransition: event isn't declared from the current state
            GuardNotMet: every candidate guard refused
            AmbiguousTransition: more than one guard passed
            ActionFailed: an entry or exit action raised; position unchanged
        """
        source = self.state
        candidates = self._by_key.get((source, event), [])
        if not candidates:
            raise NoSuchTransition(source, event, sorted(self.permitted_events()))

        passing = [s for s in candidates if self._passes(s)]
        if not passing:
            raise GuardNotMet(source, event, [s.guard.description for s in candidates])
        if len(passing) > 1:
            raise AmbiguousTransition(source, event, [s.dest for s in passing])

        try:
            fired = self.machine.events[event].trigger(self)
        except Exception as e:
            if self.state != source:
                self.machine.set_state(source, model=self)
            logger.warning(f"[FSM] {self.name}: {event} from {source} failed, position restored: {e}")
            raise ActionFailed(source, event, e) from e

        if not fired:
            raise GuardNotMet(source, event, [s.guard.description for s in candidates if s.guard])
        return TransitionResult(source, passing[0].dest, event)
