import base64
import io

import numpy as np
import pytest
from PIL import Image

from dermascan.models.schemas import Diagnosis
from dermascan.services.camera import CameraCapture
from dermascan.services.history_store import HistoryStore
from dermascan.services.skin_analysis_service import SkinAnalysisService


def diagnosis_payload(**overrides):
    payload = {
        "condition": "Acne Vulgaris",
        "confidence": 0.87,
        "description": "Inflammatory papules on the cheeks and forehead.",
        "severity": "Moderate",
        "recommendations": ["Cleanse twice daily", "Avoid picking lesions"],
        "suggestedIngredients": ["Salicylic acid", "Niacinamide"],
        "disclaimer": "This is not a substitute for professional medical advice.",
        "detections": [
            {"label": "Acne", "box_2d": [100, 200, 300, 500]},
            {"label": "Redness", "box_2d": [400, 100, 600, 350]},
        ],
    }
    payload.update(overrides)
    return payload


def make_diagnosis(**overrides) -> Diagnosis:
    return Diagnosis.model_validate(diagnosis_payload(**overrides))


def make_image(width=64, height=48) -> str:
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), (200, 150, 130)).save(buffer, format="JPEG")
    return "data:image/jpeg;base64," + base64.b64encode(buffer.getvalue()).decode("ascii")


class FakeChat:
    def __init__(self, fragments=None, error_after=None):
        self.fragments = fragments if fragments is not None else ["Niacinamide ", "helps ", "most."]
        self.error_after = error_after
        self.sent = []

    async def send_message_stream(self, text):
        self.sent.append(text)
        for index, fragment in enumerate(self.fragments):
            if self.error_after is not None and index == self.error_after:
                raise ConnectionError("stream dropped")
            yield fragment


class FakeAnalysisClient:
    def __init__(self, diagnosis=None, error=None, chat=None):
        self.diagnosis = diagnosis or make_diagnosis()
        self.error = error
        self.chat = chat or FakeChat()
        self.calls = []
        self.chat_contexts = []

    async def analyze_skin(self, image, concerns):
        self.calls.append((image, frozenset(concerns)))
        if self.error is not None:
            raise self.error
        return self.diagnosis

    def create_chat_session(self, diagnosis):
        self.chat_contexts.append(diagnosis)
        return self.chat


class FakeDevice:
    def __init__(self, opened=True, frame_ok=True):
        self.opened = opened
        self.frame_ok = frame_ok
        self.released = False

    def isOpened(self):
        return self.opened

    def read(self):
        if not self.frame_ok:
            return False, None
        return True, np.full((48, 64, 3), 128, dtype=np.uint8)

    def release(self):
        self.released = True


@pytest.fixture
def image():
    return make_image()


@pytest.fixture
def history_store(tmp_path):
    return HistoryStore(tmp_path / "local_storage.json")


@pytest.fixture
def client():
    return FakeAnalysisClient()


@pytest.fixture
def devices():
    return []


@pytest.fixture
def camera_factory(devices):
    def factory():
        def opener(index):
            device = FakeDevice()
            devices.append(device)
            return device
        return CameraCapture(0, 80, opener=opener)
    return factory


@pytest.fixture
def service(client, history_store, camera_factory):
    return SkinAnalysisService(client, history_store, camera_factory=camera_factory, clock=lambda: 1760000000.0)
