import asyncio
import threading

import pytest
import requests
from fastapi.testclient import TestClient

import overlay.client
from app.app import app
from fakes import FakeExtractionResponse, FakeExtractionSession
from overlay.client import ExtractionClient, JoinBarrier
from overlay.scanner import ScanResult, scan


EXTRACT_URL = "http://testserver/api/parse-html"
WAIT = 2.0

FUNCTION_TEXTS = ("Course Registration", "Grade Report", "Library", "")
CATEGORY_TEXTS = ("教務系統", "Academics", "編輯我的最愛")


def records(*texts, item_type="function"):
    return {"items": [{"text": t, "type": item_type} for t in texts]}


class RendezvousSession(FakeExtractionSession):
    """Each post() blocks until the other category's post() has started."""

    def __init__(self, **replies):
        super().__init__(**replies)
        self.rendezvous = threading.Barrier(2, timeout=WAIT)

    def post(self, url, json=None, timeout=None):
        self.rendezvous.wait()
        return super().post(url, json=json, timeout=timeout)


@pytest.fixture
def scanned(document):
    return scan(document)


@pytest.fixture
def full_session():
    """Fake service answering both categories for the fixture menu."""
    return FakeExtractionSession(
        function=records(*FUNCTION_TEXTS),
        category=records(*CATEGORY_TEXTS, item_type="category"),
    )


class TestJoinBarrier:
    """Test the 2-of-2 join."""

    @pytest.mark.parametrize("order", [("function", "category"), ("category", "function")])
    def test_fires_once_after_both(self, order):
        """Test that the callback fires once, after the second arrival, in either order."""
        fired = []
        barrier = JoinBarrier(("function", "category"), fired.append)

        barrier.arrive(order[0], ["first"])
        assert fired == []
        barrier.arrive(order[1], ["second"])

        assert len(fired) == 1
        assert barrier.fired
        assert fired[0][order[0]] == ["first"]

    def test_duplicate_arrival_counts_once(self):
        """Test that the same party arriving twice does not complete the join."""
        fired = []
        barrier = JoinBarrier(("function", "category"), fired.append)
        barrier.arrive("function", [])
        barrier.arrive("function", ["again"])
        assert fired == []

    def test_late_arrival_ignored(self):
        """Test that arrivals after firing are dropped."""
        fired = []
        barrier = JoinBarrier(("function", "category"), fired.append)
        barrier.arrive("function", [])
        barrier.arrive("category", [])
        barrier.arrive("category", ["late"])
        assert len(fired) == 1

    def test_unknown_key(self):
        """Test that an unexpected party is rejected."""
        barrier = JoinBarrier(("function", "category"), lambda arrived: None)
        with pytest.raises(KeyError):
            barrier.arrive("widget", [])


class TestExtractionClient:
    """Test ExtractionClient.extract() against fake services."""

    def test_merged_function_items_first(self, scanned, full_session):
        """Test that function items precede category items, each in DOM order."""
        items = asyncio.run(ExtractionClient(EXTRACT_URL, session=full_session).extract(scanned))

        assert [i.text for i in items] == [
            "Course Registration", "Grade Report", "Library",
            "教務系統", "Academics", "編輯我的最愛",
        ]
        assert [i.category for i in items[:3]] == ["function"] * 3
        assert items[0].source is scanned.functions[0]
        assert items[3].source is scanned.categories[0]

    def test_requests_run_concurrently(self, scanned):
        """Test that both category requests are in flight at the same time."""
        session = RendezvousSession(
            function=records(*FUNCTION_TEXTS),
            category=records(*CATEGORY_TEXTS, item_type="category"),
        )

        items = asyncio.run(ExtractionClient(EXTRACT_URL, session=session).extract(scanned))

        assert not session.rendezvous.broken
        assert len(items) == 6
        assert len(session.calls) == 2

    def test_category_answer_first(self, scanned, monkeypatch):
        """Test that a category reply arriving first still aggregates functions first, once."""
        arrivals = []
        category_arrived = threading.Event()

        class RecordingBarrier(JoinBarrier):
            def arrive(self, key, items):
                arrivals.append(key)
                super().arrive(key, items)
                if key == "category":
                    category_arrived.set()

        class SlowFunctionSession(FakeExtractionSession):
            def post(self, url, json=None, timeout=None):
                if json["type"] == "function" and not category_arrived.wait(WAIT):
                    raise requests.Timeout("category never arrived")
                return super().post(url, json=json, timeout=timeout)

        monkeypatch.setattr(overlay.client, "JoinBarrier", RecordingBarrier)
        session = SlowFunctionSession(
            function=records(*FUNCTION_TEXTS),
            category=records(*CATEGORY_TEXTS, item_type="category"),
        )
        completed = []

        items = asyncio.run(
            ExtractionClient(EXTRACT_URL, session=session).extract(scanned, on_complete=completed.append)
        )

        assert arrivals == ["category", "function"]
        assert len(completed) == 1
        assert completed[0] == items
        assert [i.category for i in items] == ["function"] * 3 + ["category"] * 3

    def test_on_complete_called_once(self, scanned, full_session):
        """Test that the completion callback sees the aggregated list exactly once."""
        completed = []
        items = asyncio.run(
            ExtractionClient(EXTRACT_URL, session=full_session).extract(scanned, on_complete=completed.append)
        )
        assert completed == [items]

    def test_category_failure_degrades(self, scanned):
        """Test that a failed category contributes nothing while the other survives."""
        session = FakeExtractionSession(
            function=records("Course Registration", "Grade Report"),
            category=requests.ConnectionError("refused"),
        )
        items = asyncio.run(ExtractionClient(EXTRACT_URL, session=session).extract(scanned))
        assert [i.text for i in items] == ["Course Registration", "Grade Report"]

    def test_both_failures_give_empty_list(self, scanned):
        """Test that a 500 and a non-JSON body still complete the join with no items."""
        session = FakeExtractionSession(
            function=FakeExtractionResponse({}, status=500),
            category=FakeExtractionResponse(ValueError("not json")),
        )
        completed = []
        items = asyncio.run(
            ExtractionClient(EXTRACT_URL, session=session).extract(scanned, on_complete=completed.append)
        )
        assert items == []
        assert completed == [[]]

    def test_malformed_payload(self, scanned):
        """Test that a body without an items list is treated as a failure."""
        session = FakeExtractionSession(function={"oops": 1}, category=records())
        items = asyncio.run(ExtractionClient(EXTRACT_URL, session=session).extract(scanned))
        assert items == []

    def test_short_response_truncates(self, scanned):
        """Test that missing trailing records drop their elements silently."""
        session = FakeExtractionSession(function=records("Course Registration"), category=records())
        items = asyncio.run(ExtractionClient(EXTRACT_URL, session=session).extract(scanned))
        assert [i.text for i in items] == ["Course Registration"]
        assert items[0].source is scanned.functions[0]

    def test_empty_category_sends_no_request(self, scanned):
        """Test that a category with no candidates arrives without a request."""
        session = FakeExtractionSession(function=records("Course Registration"))
        only_functions = ScanResult(functions=scanned.functions[:1], categories=[])

        items = asyncio.run(ExtractionClient(EXTRACT_URL, session=session).extract(only_functions))

        assert len(session.calls) == 1
        assert session.calls[0]["type"] == "function"
        assert len(items) == 1

    def test_nothing_scanned(self):
        """Test that an empty scan completes immediately with no requests."""
        session = FakeExtractionSession()
        items = asyncio.run(ExtractionClient(EXTRACT_URL, session=session).extract(ScanResult()))
        assert items == []
        assert session.calls == []

    def test_request_payload(self, scanned):
        """Test that each request carries that category's outer HTML."""
        session = FakeExtractionSession(function=records(), category=records())
        asyncio.run(ExtractionClient(EXTRACT_URL, session=session).extract(scanned))

        by_type = {call["type"]: call for call in session.calls}
        assert len(by_type["function"]["htmlElements"]) == 4
        assert len(by_type["category"]["htmlElements"]) == 3
        assert "of_display('UAA002')" in by_type["function"]["htmlElements"][0]["html"]

    def test_close(self):
        """Test that close() releases the HTTP session."""
        class ClosingSession(FakeExtractionSession):
            closed = False

            def close(self):
                self.closed = True

        session = ClosingSession()
        ExtractionClient(EXTRACT_URL, session=session).close()
        assert session.closed


class TestAgainstService:
    """Test the client end to end through the real extraction route."""

    def test_round_trip(self, scanned):
        """Test that the real route yields texts and codes for the fixture menu."""
        client = ExtractionClient(EXTRACT_URL, session=TestClient(app))
        items = asyncio.run(client.extract(scanned))

        functions = [i for i in items if i.is_function]
        assert [(i.text, i.code) for i in functions] == [
            ("Course Registration", "UAA002"),
            ("Grade Report", "GRD010"),
            ("Library", "LIB001"),
        ]
        assert [i.text for i in items if not i.is_function] == ["教務系統", "Academics", "編輯我的最愛"]
