"""
Session state machine.

The Session is an immutable snapshot; ``reduce`` maps (session, event) to the
next snapshot and never performs I/O. Asynchronous results (camera, analysis)
re-enter as events, so every transition can be tested without a UI.
"""
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import FrozenSet, Optional, Union

from dermascan.models.schemas import Diagnosis, HistoryEntry, User


class Screen(str, Enum):
    LOGIN = "login"
    DASHBOARD = "dashboard"
    SCANNER = "scanner"
    RESULTS = "results"


@dataclass(frozen=True)
class Session:
    screen: Screen = Screen.LOGIN
    user: Optional[User] = None
    selected_concerns: FrozenSet[str] = frozenset()
    captured_image: Optional[str] = None
    diagnosis: Optional[Diagnosis] = None
    # True from capture until the analysis call returns, whatever the screen
    analysis_in_flight: bool = False
    # Attempt the results screen is waiting on; None once it is ready or abandoned
    awaiting_attempt: Optional[str] = None
    show_annotations: bool = True
    notice: Optional[str] = None
    # Image and diagnosis held before the attempt, restored on failure
    rollback_image: Optional[str] = field(default=None, repr=False)
    rollback_diagnosis: Optional[Diagnosis] = field(default=None, repr=False)

    @property
    def is_analyzing(self) -> bool:
        return self.screen is Screen.RESULTS and self.awaiting_attempt is not None

    @property
    def is_ready(self) -> bool:
        return self.screen is Screen.RESULTS and self.awaiting_attempt is None and self.diagnosis is not None

    @property
    def can_start_scan(self) -> bool:
        return (
            self.screen is Screen.DASHBOARD
            and bool(self.selected_concerns)
            and not self.analysis_in_flight
        )


# Events ---------------------------------------------------------------------

@dataclass(frozen=True)
class LoginSubmitted:
    email: str
    password: str


@dataclass(frozen=True)
class LoggedOut:
    pass


@dataclass(frozen=True)
class ConcernToggled:
    tag: str


@dataclass(frozen=True)
class ScanStarted:
    pass


@dataclass(frozen=True)
class ScanCancelled:
    pass


@dataclass(frozen=True)
class CameraFailed:
    message: str


@dataclass(frozen=True)
class ImageCaptured:
    image: str
    attempt_id: str


@dataclass(frozen=True)
class AnalysisSucceeded:
    attempt_id: str
    diagnosis: Diagnosis


@dataclass(frozen=True)
class AnalysisFailed:
    attempt_id: str
    message: str


@dataclass(frozen=True)
class HistorySelected:
    entry: HistoryEntry


@dataclass(frozen=True)
class ResultsDismissed:
    pass


@dataclass(frozen=True)
class AnnotationsToggled:
    pass


@dataclass(frozen=True)
class NoticeDismissed:
    pass


Event = Union[
    LoginSubmitted, LoggedOut, ConcernToggled, ScanStarted, ScanCancelled,
    CameraFailed, ImageCaptured, AnalysisSucceeded, AnalysisFailed,
    HistorySelected, ResultsDismissed, AnnotationsToggled, NoticeDismissed,
]


class InvalidTransition(Exception):
    """Raised when an event is not accepted in the current state."""

    def __init__(self, session: Session, event: Event):
        self.session = session
        self.event = event
        super().__init__(f"{type(event).__name__} is not allowed on the {session.screen.value} screen")


def display_name(email: str) -> str:
    local = email.split("@", 1)[0]
    words = local.replace(".", " ").replace("_", " ").replace("-", " ").split()
    return " ".join(word.capitalize() for word in words) or email


def accepts(session: Session, event: Event) -> bool:
    """Whether ``event`` causes a transition from ``session``."""
    if isinstance(event, LoginSubmitted):
        return session.screen is Screen.LOGIN and bool(event.email.strip()) and bool(event.password)
    if isinstance(event, LoggedOut):
        return True
    if isinstance(event, ConcernToggled):
        return session.screen is Screen.DASHBOARD
    if isinstance(event, ScanStarted):
        return session.can_start_scan
    if isinstance(event, (ScanCancelled, CameraFailed)):
        return session.screen is Screen.SCANNER
    if isinstance(event, ImageCaptured):
        return session.screen is Screen.SCANNER and not session.analysis_in_flight
    if isinstance(event, (AnalysisSucceeded, AnalysisFailed)):
        return session.analysis_in_flight
    if isinstance(event, HistorySelected):
        return session.screen in (Screen.DASHBOARD, Screen.RESULTS) and not session.is_analyzing
    if isinstance(event, ResultsDismissed):
        return session.screen is Screen.RESULTS and not session.is_analyzing
    if isinstance(event, AnnotationsToggled):
        return session.screen is Screen.RESULTS
    if isinstance(event, NoticeDismissed):
        return session.notice is not None
    return False


def reduce(session: Session, event: Event) -> Session:
    """Return the session that follows ``event``.

    Events that are not accepted in the current state leave the session
    unchanged.
    """
    if not accepts(session, event):
        return session

    if isinstance(event, LoginSubmitted):
        email = event.email.strip()
        user = User(id="1", name=display_name(email), email=email)
        return replace(session, screen=Screen.DASHBOARD, user=user, notice=None)

    if isinstance(event, LoggedOut):
        # History lives outside the session; an in-flight call keeps its flag
        return Session(analysis_in_flight=session.analysis_in_flight)

    if isinstance(event, ConcernToggled):
        selected = set(session.selected_concerns)
        if event.tag in selected:
            selected.discard(event.tag)
        else:
            selected.add(event.tag)
        return replace(session, selected_concerns=frozenset(selected))

    if isinstance(event, ScanStarted):
        return replace(session, screen=Screen.SCANNER, notice=None)

    if isinstance(event, ScanCancelled):
        return replace(session, screen=Screen.DASHBOARD)

    if isinstance(event, CameraFailed):
        return replace(session, notice=event.message)

    if isinstance(event, ImageCaptured):
        return replace(
            session,
            screen=Screen.RESULTS,
            captured_image=event.image,
            diagnosis=None,
            analysis_in_flight=True,
            awaiting_attempt=event.attempt_id,
            notice=None,
            rollback_image=session.captured_image,
            rollback_diagnosis=session.diagnosis,
        )

    if isinstance(event, AnalysisSucceeded):
        if session.awaiting_attempt != event.attempt_id:
            # The user navigated away; only the flag is released
            return replace(session, analysis_in_flight=False)
        return replace(
            session,
            diagnosis=event.diagnosis,
            analysis_in_flight=False,
            awaiting_attempt=None,
            rollback_image=None,
            rollback_diagnosis=None,
        )

    if isinstance(event, AnalysisFailed):
        if session.awaiting_attempt != event.attempt_id:
            return replace(session, analysis_in_flight=False)
        return replace(
            session,
            screen=Screen.DASHBOARD,
            captured_image=session.rollback_image,
            diagnosis=session.rollback_diagnosis,
            analysis_in_flight=False,
            awaiting_attempt=None,
            notice=event.message,
            rollback_image=None,
            rollback_diagnosis=None,
        )

    if isinstance(event, HistorySelected):
        return replace(
            session,
            screen=Screen.RESULTS,
            captured_image=event.entry.image,
            diagnosis=event.entry.result,
            selected_concerns=frozenset(),
            awaiting_attempt=None,
            notice=None,
        )

    if isinstance(event, ResultsDismissed):
        return replace(session, screen=Screen.DASHBOARD, captured_image=None, diagnosis=None)

    if isinstance(event, AnnotationsToggled):
        return replace(session, show_annotations=not session.show_annotations)

    if isinstance(event, NoticeDismissed):
        return replace(session, notice=None)

    return session
