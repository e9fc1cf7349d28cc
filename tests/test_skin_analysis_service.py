import asyncio
import threading

import pytest

from dermascan.models.session import InvalidTransition, Screen
from dermascan.services.camera import CameraCapture
from dermascan.services.chat_transcript import FAILURE_TEXT
from dermascan.services.gemini_service import AnalysisError
from dermascan.services.skin_analysis_service import ANALYSIS_FAILED_NOTICE, SkinAnalysisService

from conftest import FakeAnalysisClient, FakeChat, FakeDevice, make_diagnosis


def to_scanner(service, *tags):
    service.login("jane@example.com", "secret")
    for tag in tags or ("acne",):
        service.toggle_concern(tag)
    asyncio.run(service.start_scan())


def test_history_loaded_at_startup(client, history_store, service, image):
    to_scanner(service)
    asyncio.run(service.capture(image))

    restarted = SkinAnalysisService(client, history_store)
    assert restarted.history == service.history
    assert restarted.session.screen is Screen.LOGIN


def test_unknown_concern_is_rejected(service):
    service.login("jane@example.com", "secret")
    with pytest.raises(KeyError):
        service.toggle_concern("freckles")


def test_start_scan_requires_selection(service):
    service.login("jane@example.com", "secret")
    with pytest.raises(InvalidTransition):
        asyncio.run(service.start_scan())
    assert service.session.screen is Screen.DASHBOARD


def test_start_scan_opens_camera_and_cancel_releases_it(service, devices):
    to_scanner(service)
    assert service.session.screen is Screen.SCANNER
    assert service.camera is not None and service.camera.is_open

    service.cancel_scan()
    assert service.camera is None
    assert devices[0].released
    assert service.session.screen is Screen.DASHBOARD


def test_camera_failure_is_reported_on_scanner(client, history_store):
    device = FakeDevice(opened=False)
    service = SkinAnalysisService(client, history_store,
                                  camera_factory=lambda: CameraCapture(opener=lambda index: device))
    to_scanner(service)
    assert service.session.screen is Screen.SCANNER
    assert "camera" in service.session.notice
    assert service.camera is None

    service.cancel_scan()
    assert service.session.screen is Screen.DASHBOARD


def gated_camera_factory(devices, gates, opened=True):
    """Camera factory whose opens block until their gate is set."""
    def factory():
        gate = threading.Event()
        gates.append(gate)

        def opener(index):
            gate.wait(5)
            device = FakeDevice(opened=opened)
            devices.append(device)
            return device
        return CameraCapture(0, 80, opener=opener)
    return factory


def test_restart_while_opening_keeps_one_camera(service, devices):
    gates = []
    service.camera_factory = gated_camera_factory(devices, gates)
    service.login("jane@example.com", "secret")
    service.toggle_concern("acne")

    async def scenario():
        first = asyncio.create_task(service.start_scan())
        await asyncio.sleep(0)
        assert service.session.screen is Screen.SCANNER
        service.cancel_scan()
        second = asyncio.create_task(service.start_scan())
        await asyncio.sleep(0)
        for gate in gates:
            gate.set()
        await asyncio.gather(first, second)

    asyncio.run(scenario())

    assert len(devices) == 2
    assert [device.released for device in devices].count(False) == 1
    assert service.camera is not None and service.camera.is_open

    service.cancel_scan()
    assert service.camera is None
    assert all(device.released for device in devices)


def test_open_finishing_after_cancel_is_released(service, devices):
    gates = []
    service.camera_factory = gated_camera_factory(devices, gates)
    service.login("jane@example.com", "secret")
    service.toggle_concern("acne")

    async def scenario():
        task = asyncio.create_task(service.start_scan())
        await asyncio.sleep(0)
        service.cancel_scan()
        gates[0].set()
        await task

    asyncio.run(scenario())

    assert service.session.screen is Screen.DASHBOARD
    assert service.camera is None
    assert devices[0].released


def test_open_failing_after_cancel_leaves_dashboard_alone(service, devices):
    gates = []
    service.camera_factory = gated_camera_factory(devices, gates, opened=False)
    service.login("jane@example.com", "secret")
    service.toggle_concern("acne")

    async def scenario():
        task = asyncio.create_task(service.start_scan())
        await asyncio.sleep(0)
        service.cancel_scan()
        gates[0].set()
        return await task

    session = asyncio.run(scenario())

    assert session.screen is Screen.DASHBOARD
    assert session.notice is None
    assert devices[0].released


def test_successful_scan_scenario(service, client, history_store, image, devices):
    """acne + redness, Moderate diagnosis with two detections, empty history."""
    to_scanner(service, "acne", "redness")

    asyncio.run(service.capture(image))

    session = service.session
    assert session.is_ready
    assert session.diagnosis.severity.value == "Moderate"
    assert len(session.diagnosis.detections) == 2
    assert client.calls == [(image, frozenset({"acne", "redness"}))]
    assert devices[0].released

    assert len(service.history) == 1
    newest = service.history[0]
    assert newest.id == "1760000000000"
    assert newest.condition == "Acne Vulgaris"
    assert newest.image == image
    assert newest.result == session.diagnosis
    assert history_store.load() == service.history


def test_snapshot_from_camera_when_no_image_given(service, client):
    to_scanner(service)
    asyncio.run(service.capture())
    assert service.session.is_ready
    assert client.calls[0][0].startswith("data:image/jpeg;base64,")


def test_snapshot_runs_off_the_event_loop(service):
    to_scanner(service)
    loop_thread = threading.get_ident()
    read_threads = []
    device = service.camera._device
    original_read = device.read

    def read():
        read_threads.append(threading.get_ident())
        return original_read()
    device.read = read

    image = asyncio.run(service.take_snapshot())

    assert image.startswith("data:image/jpeg;base64,")
    assert read_threads and read_threads[0] != loop_thread
    assert device.released
    assert service.camera is None


def test_failed_snapshot_is_reported_on_scanner(client, history_store):
    device = FakeDevice(frame_ok=False)
    service = SkinAnalysisService(client, history_store,
                                  camera_factory=lambda: CameraCapture(opener=lambda index: device))
    to_scanner(service)

    assert asyncio.run(service.capture()).screen is Screen.SCANNER
    assert service.session.notice
    assert device.released
    assert client.calls == []


def test_failed_analysis_scenario(history_store, camera_factory, image):
    client = FakeAnalysisClient(error=AnalysisError("remote error"))
    service = SkinAnalysisService(client, history_store, camera_factory=camera_factory)
    to_scanner(service)
    before = service.session

    asyncio.run(service.capture(image))

    session = service.session
    assert session.screen is Screen.DASHBOARD
    assert not session.analysis_in_flight
    assert session.captured_image == before.captured_image
    assert session.diagnosis == before.diagnosis
    assert session.notice == ANALYSIS_FAILED_NOTICE
    assert service.history == []
    assert history_store.load() == []


def test_unexpected_error_is_also_contained(history_store, camera_factory, image):
    client = FakeAnalysisClient(error=KeyError("candidates"))
    service = SkinAnalysisService(client, history_store, camera_factory=camera_factory)
    to_scanner(service)
    asyncio.run(service.capture(image))
    assert service.session.screen is Screen.DASHBOARD
    assert not service.session.analysis_in_flight


def test_history_capped_at_five_newest_first(service, image):
    ticks = iter(range(1, 100))
    service.clock = lambda: 1760000000.0 + next(ticks)
    service.login("jane@example.com", "secret")
    service.toggle_concern("acne")

    for n in range(7):
        service.analysis_client.diagnosis = make_diagnosis(condition=f"Condition {n}")
        asyncio.run(service.start_scan())
        asyncio.run(service.capture(image))
        service.dismiss_results()

    assert [e.condition for e in service.history] == [f"Condition {n}" for n in range(6, 1, -1)]
    assert len({e.id for e in service.history}) == 5


def test_select_history_entry(service, image):
    to_scanner(service)
    asyncio.run(service.capture(image))
    entry = service.history[0]
    service.dismiss_results()
    service.toggle_concern("pores")

    service.select_history(entry.id)

    assert service.session.is_ready
    assert service.session.captured_image == entry.image
    assert service.session.diagnosis == entry.result
    assert service.session.selected_concerns == frozenset()

    with pytest.raises(KeyError):
        service.select_history("missing")


def test_logout_keeps_history_and_releases_camera(service, image, devices):
    to_scanner(service)
    asyncio.run(service.capture(image))
    service.dismiss_results()
    asyncio.run(service.start_scan())
    assert service.camera is not None

    service.logout()
    assert service.session.screen is Screen.LOGIN
    assert service.session.user is None
    assert len(service.history) == 1
    assert all(device.released for device in devices)


def test_completion_after_logout_goes_to_history_only(service, image):
    to_scanner(service)
    attempt_id = service.begin_capture(image)
    concerns = service.session.selected_concerns
    service.logout()

    asyncio.run(service.run_analysis(attempt_id, image, concerns))

    assert service.session.screen is Screen.LOGIN
    assert service.session.diagnosis is None
    assert not service.session.analysis_in_flight
    assert len(service.history) == 1


def test_chat_transcript_follows_current_diagnosis(service, client, image):
    assert service.transcript is None
    to_scanner(service)
    asyncio.run(service.capture(image))

    transcript = service.transcript
    assert transcript is service.transcript
    assert client.chat_contexts == [service.session.diagnosis]
    assert "Acne Vulgaris" in transcript.messages[0].text

    assert asyncio.run(service.send_chat("What ingredient helps most?"))
    assert service.chat_messages()[-1].text == "Niacinamide helps most."

    service.dismiss_results()
    assert service.transcript is None

    service.select_history(service.history[0].id)
    assert service.transcript is not transcript
    assert len(service.chat_messages()) == 1


def test_chat_failure_does_not_break_session(history_store, camera_factory, image):
    client = FakeAnalysisClient(chat=FakeChat(["x"], error_after=0))
    service = SkinAnalysisService(client, history_store, camera_factory=camera_factory)
    to_scanner(service)
    asyncio.run(service.capture(image))

    assert asyncio.run(service.send_chat("hello"))
    assert service.chat_messages()[-1].text == FAILURE_TEXT
    assert service.session.is_ready


def test_send_chat_without_diagnosis(service):
    assert not asyncio.run(service.send_chat("hello"))
