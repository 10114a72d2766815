# Copyright 2024 Michael Maillet, Damien Davison, Sacha Davison
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
Deployment lifecycle of the loaded manifest.

A pure reducer maps (snapshot, event) to a new snapshot plus the compose
commands to issue. :class:`DeploymentController` owns the single snapshot,
runs those commands on the event loop and feeds their results back in as
completion events, so every transition happens on one thread in completion
order.
"""
import asyncio
import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, Dict, FrozenSet, List, Optional, Set, Tuple, Union, get_args

from ..RUNNERS.compose_runner import ComposeBackend

logger = logging.getLogger(__name__)


class DeploymentState(str, Enum):
    """
    Lifecycle state of the stack described by the loaded manifest.
    """
    NO_FILE = "no_file"
    OPENING_FILE = "opening_file"
    CHECKING = "checking"
    DEAD = "dead"
    DEAD_ERROR = "dead_error"
    DEPLOYING = "deploying"
    UNDEPLOYING = "undeploying"
    WARNING = "warning"  # degraded Running; no event produces it yet
    RUNNING = "running"


# States in which no command is in flight and a manifest is loaded
SETTLED_STATES = frozenset({
    DeploymentState.DEAD,
    DeploymentState.DEAD_ERROR,
    DeploymentState.RUNNING,
    DeploymentState.WARNING,
})
BUSY_STATES = frozenset({
    DeploymentState.CHECKING,
    DeploymentState.DEPLOYING,
    DeploymentState.UNDEPLOYING,
})


@dataclass(frozen=True)
class Success:
    """A compose command completed; ``output`` is its stdout."""
    output: str = ""


@dataclass(frozen=True)
class Failure:
    """A compose command failed with ``message``."""
    message: str


CommandResult = Union[Success, Failure]


# Events

@dataclass(frozen=True)
class FileSelected:
    """The operator picked a manifest; its path is not known yet."""


@dataclass(frozen=True)
class ManifestPathChanged:
    path: str


@dataclass(frozen=True)
class OpenAborted:
    """The picked manifest could not be loaded."""


@dataclass(frozen=True)
class StatusCheckRequested:
    pass


@dataclass(frozen=True)
class StatusQueryCompleted:
    generation: int
    result: CommandResult


@dataclass(frozen=True)
class DeployRequested:
    pass


@dataclass(frozen=True)
class DeployCompleted:
    generation: int
    result: CommandResult


@dataclass(frozen=True)
class KillRequested:
    pass


@dataclass(frozen=True)
class KillCompleted:
    generation: int
    result: CommandResult


Event = Union[
    FileSelected,
    ManifestPathChanged,
    OpenAborted,
    StatusCheckRequested,
    StatusQueryCompleted,
    DeployRequested,
    DeployCompleted,
    KillRequested,
    KillCompleted,
]


# Commands

@dataclass(frozen=True)
class QueryStatus:
    path: str
    generation: int


@dataclass(frozen=True)
class Deploy:
    path: str
    generation: int


@dataclass(frozen=True)
class Kill:
    path: str
    generation: int


Command = Union[QueryStatus, Deploy, Kill]


@dataclass(frozen=True)
class DeploymentSnapshot:
    """
    The whole lifecycle state.

    ``generation`` changes every time the manifest path changes; results of
    commands issued under an older generation are discarded.
    """
    state: DeploymentState = DeploymentState.NO_FILE
    path: str = ""
    error_message: Optional[str] = None
    generation: int = 0


Transition = Tuple[DeploymentSnapshot, Tuple[Command, ...]]


def classify_status_output(output: str) -> DeploymentState:
    """
    Maps a ``ps`` listing to Running or Dead.

    The listing has a two line header, so more than three lines means at
    least one container is reported; any exited container makes the stack Dead.
    """
    if len(output.split("\n")) > 3:
        if "Exit" in output:
            return DeploymentState.DEAD
        return DeploymentState.RUNNING
    return DeploymentState.DEAD


def _enter(snapshot: DeploymentSnapshot, state: DeploymentState, **changes) -> DeploymentSnapshot:
    return replace(snapshot, state=state, error_message=None, **changes)


def _fail(snapshot: DeploymentSnapshot, message: str) -> DeploymentSnapshot:
    return replace(snapshot, state=DeploymentState.DEAD_ERROR, error_message=message)


def _check(snapshot: DeploymentSnapshot) -> Transition:
    snapshot = _enter(snapshot, DeploymentState.CHECKING)
    return snapshot, (QueryStatus(snapshot.path, snapshot.generation),)


def _deploy(snapshot: DeploymentSnapshot) -> Transition:
    snapshot = _enter(snapshot, DeploymentState.DEPLOYING)
    return snapshot, (Deploy(snapshot.path, snapshot.generation),)


def _ignore(snapshot: DeploymentSnapshot, event: Event) -> Transition:
    logger.debug("Ignoring %s in state %s", type(event).__name__, snapshot.state.value)
    return snapshot, ()


def _is_current(snapshot: DeploymentSnapshot, event, expected: DeploymentState) -> bool:
    if event.generation != snapshot.generation:
        logger.info("Discarding stale %s for generation %d", type(event).__name__, event.generation)
        return False
    return snapshot.state == expected


def _on_file_selected(snapshot: DeploymentSnapshot, event: FileSelected) -> Transition:
    if snapshot.state is DeploymentState.NO_FILE or snapshot.state in SETTLED_STATES:
        return _enter(snapshot, DeploymentState.OPENING_FILE), ()
    return _ignore(snapshot, event)


def _on_manifest_path_changed(snapshot: DeploymentSnapshot, event: ManifestPathChanged) -> Transition:
    opening = snapshot.state is DeploymentState.OPENING_FILE
    snapshot = replace(snapshot, path=event.path, generation=snapshot.generation + 1)
    if not event.path:
        # Unloading the manifest wins over whatever is in flight
        return _enter(snapshot, DeploymentState.NO_FILE), ()
    if opening:
        # A freshly opened manifest is deployed straight away
        return _deploy(snapshot)
    return _check(snapshot)


def _on_open_aborted(snapshot: DeploymentSnapshot, event: OpenAborted) -> Transition:
    if snapshot.state is not DeploymentState.OPENING_FILE:
        return _ignore(snapshot, event)
    if snapshot.path:
        return _check(snapshot)
    return _enter(snapshot, DeploymentState.NO_FILE), ()


def _on_status_check_requested(snapshot: DeploymentSnapshot, event: StatusCheckRequested) -> Transition:
    if snapshot.state in SETTLED_STATES and snapshot.path:
        return _check(snapshot)
    return _ignore(snapshot, event)


def _on_status_query_completed(snapshot: DeploymentSnapshot, event: StatusQueryCompleted) -> Transition:
    if not _is_current(snapshot, event, DeploymentState.CHECKING):
        return _ignore(snapshot, event)
    if isinstance(event.result, Failure):
        return _fail(snapshot, event.result.message), ()
    return _enter(snapshot, classify_status_output(event.result.output)), ()


def _on_deploy_requested(snapshot: DeploymentSnapshot, event: DeployRequested) -> Transition:
    if snapshot.state in (DeploymentState.DEAD, DeploymentState.DEAD_ERROR):
        return _deploy(snapshot)
    return _ignore(snapshot, event)


def _on_deploy_completed(snapshot: DeploymentSnapshot, event: DeployCompleted) -> Transition:
    if not _is_current(snapshot, event, DeploymentState.DEPLOYING):
        return _ignore(snapshot, event)
    if isinstance(event.result, Failure):
        return _fail(snapshot, event.result.message), ()
    return _enter(snapshot, DeploymentState.RUNNING), ()


def _on_kill_requested(snapshot: DeploymentSnapshot, event: KillRequested) -> Transition:
    if snapshot.state in (DeploymentState.RUNNING, DeploymentState.WARNING):
        snapshot = _enter(snapshot, DeploymentState.UNDEPLOYING)
        return snapshot, (Kill(snapshot.path, snapshot.generation),)
    return _ignore(snapshot, event)


def _on_kill_completed(snapshot: DeploymentSnapshot, event: KillCompleted) -> Transition:
    if not _is_current(snapshot, event, DeploymentState.UNDEPLOYING):
        return _ignore(snapshot, event)
    # A failed kill also lands on Dead
    return _enter(snapshot, DeploymentState.DEAD), ()


_HANDLERS: Dict[type, Callable[[DeploymentSnapshot, Event], Transition]] = {
    FileSelected: _on_file_selected,
    ManifestPathChanged: _on_manifest_path_changed,
    OpenAborted: _on_open_aborted,
    StatusCheckRequested: _on_status_check_requested,
    StatusQueryCompleted: _on_status_query_completed,
    DeployRequested: _on_deploy_requested,
    DeployCompleted: _on_deploy_completed,
    KillRequested: _on_kill_requested,
    KillCompleted: _on_kill_completed,
}

_unhandled = set(get_args(Event)) - set(_HANDLERS)
if _unhandled:
    raise RuntimeError(f"No reducer handler for {sorted(t.__name__ for t in _unhandled)}")


def reduce(snapshot: DeploymentSnapshot, event: Event) -> Transition:
    """
    Applies one event to a snapshot.

    :param snapshot: Current lifecycle state.
    :param event: Operator action or command completion.
    :return: The new snapshot and the commands to issue, in order.
    :raises TypeError: If the event type is unknown.
    """
    handler = _HANDLERS.get(type(event))
    if handler is None:
        raise TypeError(f"Unknown deployment event: {event!r}")
    return handler(snapshot, event)


# Presentation controls

class ControlAction(str, Enum):
    """What the main deployment button does when clicked."""
    OPEN = "open"
    DEPLOY = "deploy"
    KILL = "kill"


class Indicator(str, Enum):
    """Status lamps next to the deployment button."""
    HEALTHY = "healthy"
    MODERATE = "moderate"
    DEAD = "dead"


@dataclass(frozen=True)
class DeploymentControls:
    """
    What the view shows for a state: button title, the enabled button action
    (None when disabled), the lit status lamps, whether the dead lamp carries
    the clickable error badge and whether the health check toggle is shown.
    """
    title: str
    action: Optional[ControlAction]
    indicators: FrozenSet[Indicator] = frozenset()
    error_badge: bool = False
    health_toggle: bool = False


_CONTROLS: Dict[DeploymentState, DeploymentControls] = {
    DeploymentState.NO_FILE: DeploymentControls("Deploy Container", ControlAction.OPEN),
    DeploymentState.OPENING_FILE: DeploymentControls("Opening File..", None),
    DeploymentState.CHECKING: DeploymentControls("Checking..", None),
    DeploymentState.DEAD: DeploymentControls(
        "Deploy Container", ControlAction.DEPLOY, frozenset({Indicator.DEAD})),
    DeploymentState.DEAD_ERROR: DeploymentControls(
        "Deploy Container", ControlAction.DEPLOY, frozenset({Indicator.DEAD}), error_badge=True),
    DeploymentState.DEPLOYING: DeploymentControls(
        "Deploying..", None, frozenset({Indicator.MODERATE})),
    DeploymentState.UNDEPLOYING: DeploymentControls(
        "Undeploying..", None, frozenset({Indicator.MODERATE})),
    DeploymentState.WARNING: DeploymentControls(
        "Kill Container", ControlAction.KILL, frozenset({Indicator.HEALTHY, Indicator.MODERATE})),
    DeploymentState.RUNNING: DeploymentControls(
        "Kill Container", ControlAction.KILL, frozenset({Indicator.HEALTHY}), health_toggle=True),
}

if set(_CONTROLS) != set(DeploymentState):
    raise RuntimeError("Deployment controls must cover every DeploymentState")


def controls_for(state: DeploymentState) -> DeploymentControls:
    return _CONTROLS[state]


# Controller

Listener = Callable[[DeploymentSnapshot], None]


class DeploymentController:
    """
    Owns the lifecycle snapshot of the loaded manifest and runs its commands.

    Must be driven from inside a running event loop: commands are scheduled
    as tasks and their results come back through :meth:`dispatch`. Command
    failures, raised or returned, always become a :class:`Failure`.
    """

    def __init__(self,
                 backend: ComposeBackend,
                 show_error: Optional[Callable[[str], None]] = None):
        """
        Initializes the controller.

        :param backend: Runs status queries, deploys and kills.
        :param show_error: Presents an error message to the operator.
        """
        self.backend = backend
        self.presenter = show_error
        self._snapshot = DeploymentSnapshot()
        self._listeners: List[Listener] = []
        self._tasks: Set[asyncio.Task] = set()

    @property
    def snapshot(self) -> DeploymentSnapshot:
        return self._snapshot

    @property
    def state(self) -> DeploymentState:
        return self._snapshot.state

    @property
    def error_message(self) -> Optional[str]:
        """The last command error; only set while in DeadError."""
        return self._snapshot.error_message

    @property
    def path(self) -> str:
        return self._snapshot.path

    @property
    def controls(self) -> DeploymentControls:
        return controls_for(self._snapshot.state)

    @property
    def busy(self) -> bool:
        """True while a command is in flight or awaited by the state."""
        return bool(self._tasks) or self._snapshot.state in BUSY_STATES

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """
        Calls ``listener`` with every new snapshot.

        :return: A callable that removes the listener.
        """
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)
        return unsubscribe

    def dispatch(self, event: Event) -> DeploymentSnapshot:
        """
        Runs an event through the reducer and issues the resulting commands.

        :param event: The event to apply.
        :return: The snapshot after the event.
        """
        previous = self._snapshot
        self._snapshot, commands = reduce(previous, event)
        if self._snapshot != previous:
            if self._snapshot.state != previous.state:
                logger.info("Deployment state %s -> %s", previous.state.value, self._snapshot.state.value)
            for listener in list(self._listeners):
                listener(self._snapshot)
        for command in commands:
            self._issue(command)
        return self._snapshot

    # Operator actions

    def file_selected(self) -> DeploymentSnapshot:
        return self.dispatch(FileSelected())

    def manifest_path_changed(self, path: str) -> DeploymentSnapshot:
        return self.dispatch(ManifestPathChanged(path))

    def open_aborted(self) -> DeploymentSnapshot:
        return self.dispatch(OpenAborted())

    def check(self) -> DeploymentSnapshot:
        return self.dispatch(StatusCheckRequested())

    def deploy(self) -> DeploymentSnapshot:
        return self.dispatch(DeployRequested())

    def kill(self) -> DeploymentSnapshot:
        return self.dispatch(KillRequested())

    def activate(self) -> Optional[ControlAction]:
        """
        Clicks the main deployment button.

        Deploys or kills depending on the state. ``OPEN`` is returned without
        acting; picking a file is up to the caller. Never shows the error.

        :return: The action taken, or None if the button is disabled.
        """
        action = self.controls.action
        if action is ControlAction.DEPLOY:
            self.deploy()
        elif action is ControlAction.KILL:
            self.kill()
        return action

    def show_error(self) -> Optional[str]:
        """
        Clicks the error badge: presents the stored message in DeadError.

        :return: The message shown, or None outside DeadError.
        """
        if self._snapshot.state is not DeploymentState.DEAD_ERROR:
            return None
        message = self._snapshot.error_message or ""
        if self.presenter:
            self.presenter(message)
        return message

    async def wait_idle(self) -> None:
        """Waits until no command is in flight."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    # Command execution

    def _issue(self, command: Command) -> None:
        task = asyncio.get_running_loop().create_task(self._execute(command))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _execute(self, command: Command) -> None:
        """
        Runs a command against the backend and dispatches its completion.
        """
        if isinstance(command, QueryStatus):
            call = self.backend.query_status
        elif isinstance(command, Deploy):
            call = self.backend.deploy
        elif isinstance(command, Kill):
            call = self.backend.kill
        else:
            raise TypeError(f"Unknown deployment command: {command!r}")

        try:
            output = await call(command.path)
            if isinstance(output, (Success, Failure)):
                result = output
            else:
                result = Success(output or "")
        except Exception as e:
            result = Failure(str(e) or type(e).__name__)

        if isinstance(result, Failure):
            logger.warning("%s failed for %s: %s", type(command).__name__, command.path, result.message)

        if isinstance(command, QueryStatus):
            self.dispatch(StatusQueryCompleted(command.generation, result))
        elif isinstance(command, Deploy):
            self.dispatch(DeployCompleted(command.generation, result))
        else:
            self.dispatch(KillCompleted(command.generation, result))
