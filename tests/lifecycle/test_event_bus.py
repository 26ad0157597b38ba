import asyncio
import unittest

from api_logger.lifecycle import EventBus, RecordingPaused, RecordingStarted, StateChanged, to_message


class EventBusTests(unittest.TestCase):
    def test_typed_listeners_receive_only_their_events(self) -> None:
        bus = EventBus()
        started: list[RecordingStarted] = []
        bus.add_listener(RecordingStarted, started.append)

        bus.emit(RecordingStarted(session_id="s1"))
        bus.emit(RecordingPaused(pause_time=5))

        self.assertEqual([RecordingStarted(session_id="s1")], started)

    def test_removed_listener_is_not_called(self) -> None:
        bus = EventBus()
        seen: list[object] = []
        bus.add_listener(RecordingStarted, seen.append)
        bus.remove_listener(RecordingStarted, seen.append)
        bus.emit(RecordingStarted(session_id="s1"))
        self.assertEqual([], seen)

    def test_failing_listener_does_not_stop_others(self) -> None:
        bus = EventBus()
        seen: list[object] = []

        def broken(event: object) -> None:
            raise RuntimeError("boom")

        bus.subscribe(broken)
        bus.subscribe(seen.append)
        bus.emit(RecordingPaused(pause_time=1))
        self.assertEqual(1, len(seen))

    def test_async_listeners_are_scheduled_on_running_loop(self) -> None:
        bus = EventBus()
        seen: list[object] = []

        async def handler(event: object) -> None:
            seen.append(event)

        async def failing(event: object) -> None:
            raise RuntimeError("async boom")

        bus.subscribe(handler)
        bus.subscribe(failing)

        async def scenario() -> None:
            bus.emit(RecordingPaused(pause_time=2))
            self.assertEqual([], seen)
            await asyncio.sleep(0)
            await asyncio.sleep(0)

        asyncio.run(scenario())
        self.assertEqual([RecordingPaused(pause_time=2)], seen)

    def test_async_listener_without_loop_is_dropped(self) -> None:
        bus = EventBus()
        seen: list[object] = []

        async def handler(event: object) -> None:
            seen.append(event)

        bus.subscribe(handler)
        bus.emit(RecordingPaused(pause_time=3))
        self.assertEqual([], seen)


class WireFormatTests(unittest.TestCase):
    def test_to_message_uses_event_name_and_camel_case(self) -> None:
        message = to_message(StateChanged(from_state="idle", to_state="recording", state_data={"sessionId": "s1"}))
        self.assertEqual(
            {"event": "stateChanged", "fromState": "idle", "toState": "recording", "stateData": {"sessionId": "s1"}},
            message,
        )


if __name__ == "__main__":
    unittest.main()
