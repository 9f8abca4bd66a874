"""
Unit tests for UploadEventBus.
"""

import threading

from models.upload_job import UploadStatus
from services.upload_events import UploadEventBus


class TestUploadEventBus:

    def test_listeners_receive_events_in_order(self):
        bus = UploadEventBus()
        received = []
        bus.subscribe(received.append)

        bus.publish("up-1", UploadStatus.CREATED, 0, "Upload created")
        bus.publish("up-1", UploadStatus.PARSING_FILE, 15)

        assert [e.sequence for e in received] == [1, 2]
        assert [e.status for e in received] == [UploadStatus.CREATED, UploadStatus.PARSING_FILE]
        assert received[0].message == "Upload created"

    def test_publish_without_listeners(self):
        event = UploadEventBus().publish("up-1", UploadStatus.CREATED, detail={"a": 1})

        assert event.sequence == 1
        assert event.detail == {"a": 1}

    def test_unsubscribe(self):
        bus = UploadEventBus()
        received = []
        unsubscribe = bus.subscribe(received.append)

        unsubscribe()
        unsubscribe()
        bus.publish("up-1", UploadStatus.CREATED)

        assert received == []
        assert bus.listener_count == 0

    def test_failing_listener_does_not_stop_others(self):
        bus = UploadEventBus()
        received = []

        def broken(event):
            raise RuntimeError("listener down")

        bus.subscribe(broken)
        bus.subscribe(received.append)

        event = bus.publish("up-1", UploadStatus.CREATED)

        assert received == [event]

    def test_sequence_increases_across_threads(self):
        bus = UploadEventBus()
        received = []
        bus.subscribe(lambda event: received.append(event.sequence))

        def worker(n):
            for _ in range(50):
                bus.publish(f"up-{n}", UploadStatus.PARSING_FILE)

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert received == list(range(1, 201))
