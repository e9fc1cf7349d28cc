"""
Skin Analysis Service

This module owns the single client session. It turns user actions and the
completion of camera, analysis and chat calls into session events, keeps the
scan history, and holds the chat transcript of the current diagnosis.
"""
import asyncio
import logging
import time
import uuid
from datetime import datetime
from typing import Callable, Iterable, List, Optional, Protocol

from dermascan.core.config import settings
from dermascan.core.initial_data import CONCERNS_BY_ID
from dermascan.models.schemas import ChatMessage, Diagnosis, HistoryEntry
from dermascan.models.session import (
    AnalysisFailed,
    AnalysisSucceeded,
    AnnotationsToggled,
    CameraFailed,
    ConcernToggled,
    Event,
    HistorySelected,
    ImageCaptured,
    InvalidTransition,
    LoggedOut,
    LoginSubmitted,
    NoticeDismissed,
    ResultsDismissed,
    ScanCancelled,
    ScanStarted,
    Screen,
    Session,
    accepts,
    reduce,
)
from dermascan.services.camera import CameraCapture, CameraError
from dermascan.services.chat_transcript import ChatSession, ChatTranscript, UpdateCallback
from dermascan.services.history_store import HistoryStore, prepend

logger = logging.getLogger(__name__)

ANALYSIS_FAILED_NOTICE = "Analysis failed. Please ensure you have a valid Internet connection and try again."


class AnalysisClient(Protocol):
    async def analyze_skin(self, image: str, concerns: Iterable[str]) -> Diagnosis:
        ...

    def create_chat_session(self, diagnosis: Diagnosis) -> ChatSession:
        ...


class SkinAnalysisService:
    """Single owner of the session, the history and the chat transcript."""

    def __init__(self, analysis_client: AnalysisClient, history_store: HistoryStore,
                 camera_factory: Optional[Callable[[], CameraCapture]] = None,
                 clock: Callable[[], float] = time.time):
        self.analysis_client = analysis_client
        self.history_store = history_store
        self.camera_factory = camera_factory or (
            lambda: CameraCapture(settings.CAMERA_INDEX, settings.JPEG_QUALITY)
        )
        self.clock = clock
        self.session = Session()
        self.history: List[HistoryEntry] = history_store.load()
        self.camera: Optional[CameraCapture] = None
        self._scan_activation = 0
        self._transcript: Optional[ChatTranscript] = None

    # Event handling -----------------------------------------------------------

    def dispatch(self, event: Event) -> Session:
        """Apply ``event`` or raise InvalidTransition when it is not accepted."""
        if not accepts(self.session, event):
            raise InvalidTransition(self.session, event)
        previous = self.session
        self.session = reduce(previous, event)
        if self.session.diagnosis is not previous.diagnosis:
            # Transcript is scoped to one diagnosis
            self._transcript = None
        if self.session.screen is not previous.screen:
            logger.info(f"Screen {previous.screen.value} -> {self.session.screen.value}")
        return self.session

    # Login / dashboard --------------------------------------------------------

    def login(self, email: str, password: str) -> Session:
        return self.dispatch(LoginSubmitted(email=email, password=password))

    def logout(self) -> Session:
        self._release_camera()
        return self.dispatch(LoggedOut())

    def toggle_concern(self, tag: str) -> Session:
        if tag not in CONCERNS_BY_ID:
            raise KeyError(tag)
        return self.dispatch(ConcernToggled(tag=tag))

    def dismiss_notice(self) -> Session:
        return self.dispatch(NoticeDismissed())

    # Scanner ------------------------------------------------------------------

    async def start_scan(self) -> Session:
        """Enter the scanner and acquire the camera.

        Each activation gets a number. A device whose open completes after
        the scanner was left, or after a newer activation, is released
        instead of being kept.
        """
        self.dispatch(ScanStarted())
        self._scan_activation += 1
        activation = self._scan_activation
        camera = self.camera_factory()
        try:
            await asyncio.to_thread(camera.open)
        except CameraError as e:
            logger.warning(f"Camera unavailable: {e}")
            if not self._is_current_scan(activation):
                return self.session
            return self.dispatch(CameraFailed(message=str(e)))
        if not self._is_current_scan(activation) or self.camera is not None:
            logger.info("Releasing camera opened for a scan that is no longer active")
            camera.release()
            return self.session
        self.camera = camera
        return self.session

    def cancel_scan(self) -> Session:
        self._release_camera()
        return self.dispatch(ScanCancelled())

    async def take_snapshot(self) -> Optional[str]:
        """Grab a frame from the open camera, or report the failure on the scanner."""
        if self.camera is None:
            self.dispatch(CameraFailed(message="Camera is not available."))
            return None
        camera, self.camera = self.camera, None
        self._scan_activation += 1
        try:
            return await asyncio.to_thread(camera.snapshot)
        except CameraError as e:
            logger.warning(f"Snapshot failed: {e}")
            failed = CameraFailed(message=str(e))
            if accepts(self.session, failed):
                self.dispatch(failed)
            return None
        finally:
            camera.release()

    def begin_capture(self, image: str) -> str:
        """Store the captured image and move to the analyzing results screen.

        Returns the attempt id to pass to ``run_analysis``.
        """
        attempt_id = uuid.uuid4().hex
        self.dispatch(ImageCaptured(image=image, attempt_id=attempt_id))
        self._release_camera()
        return attempt_id

    async def run_analysis(self, attempt_id: str, image: str, concerns: Iterable[str]) -> Session:
        """Run the single analysis attempt for ``attempt_id``.

        Failures are converted into an AnalysisFailed event. The in-flight flag
        is released whatever the outcome.
        """
        outcome: Optional[Event] = None
        try:
            diagnosis = await self.analysis_client.analyze_skin(image, concerns)
            self._record_history(image, diagnosis)
            outcome = AnalysisSucceeded(attempt_id=attempt_id, diagnosis=diagnosis)
        except Exception as e:
            logger.error(f"Error in run_analysis: {str(e)}", exc_info=True)
            outcome = AnalysisFailed(attempt_id=attempt_id, message=ANALYSIS_FAILED_NOTICE)
        finally:
            if outcome is None:
                outcome = AnalysisFailed(attempt_id=attempt_id, message=ANALYSIS_FAILED_NOTICE)
            if accepts(self.session, outcome):
                self.dispatch(outcome)
        return self.session

    async def capture(self, image: Optional[str] = None) -> Session:
        """Capture (or accept) an image and analyze it to completion."""
        if image is None:
            image = await self.take_snapshot()
            if image is None:
                return self.session
        concerns = self.session.selected_concerns
        attempt_id = self.begin_capture(image)
        return await self.run_analysis(attempt_id, image, concerns)

    # Results ------------------------------------------------------------------

    def select_history(self, entry_id: str) -> Session:
        for entry in self.history:
            if entry.id == entry_id:
                return self.dispatch(HistorySelected(entry=entry))
        raise KeyError(entry_id)

    def dismiss_results(self) -> Session:
        return self.dispatch(ResultsDismissed())

    def toggle_annotations(self) -> Session:
        return self.dispatch(AnnotationsToggled())

    # Chat ---------------------------------------------------------------------

    @property
    def transcript(self) -> Optional[ChatTranscript]:
        """Transcript of the current diagnosis, opened on first use."""
        diagnosis = self.session.diagnosis
        if diagnosis is None or not self.session.is_ready:
            return None
        if self._transcript is None:
            chat = self.analysis_client.create_chat_session(diagnosis)
            self._transcript = ChatTranscript(diagnosis, chat)
        return self._transcript

    def chat_messages(self) -> List[ChatMessage]:
        transcript = self.transcript
        return list(transcript.messages) if transcript is not None else []

    async def send_chat(self, text: str, on_update: Optional[UpdateCallback] = None) -> bool:
        transcript = self.transcript
        if transcript is None:
            return False
        return await transcript.send(text, on_update)

    # Lifecycle ----------------------------------------------------------------

    def shutdown(self) -> None:
        self._release_camera()

    def _is_current_scan(self, activation: int) -> bool:
        return activation == self._scan_activation and self.session.screen is Screen.SCANNER

    def _release_camera(self) -> None:
        # Any open still in progress belongs to a scan that has ended
        self._scan_activation += 1
        if self.camera is not None:
            camera, self.camera = self.camera, None
            camera.release()

    def _record_history(self, image: str, diagnosis: Diagnosis) -> None:
        entry_id = int(self.clock() * 1000)
        if self.history and self.history[0].id.isdigit() and int(self.history[0].id) >= entry_id:
            entry_id = int(self.history[0].id) + 1
        entry = HistoryEntry(
            id=str(entry_id),
            date=datetime.fromtimestamp(self.clock()).strftime("%m/%d/%Y"),
            condition=diagnosis.condition,
            image=image,
            result=diagnosis,
        )
        self.history = prepend(self.history, entry, self.history_store.limit)
        self.history_store.save(self.history)
