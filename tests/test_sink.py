"""Tests for transcript delivery."""

import threading
from datetime import datetime
from unittest.mock import MagicMock, patch

import pytest
import requests

from classvoice.capture.buffer import ChunkEvent
from classvoice.config import IngestionConfig
from classvoice.exceptions import SessionRejectedError, SinkDeliveryError
from classvoice.notify import NoticeLevel
from classvoice.sink import IngestionClient, TranscriptSink


def _chunk(index=0, text="hello class"):
    return ChunkEvent(
        transcript=text,
        timestamp=datetime(2024, 9, 2, 10, 30, 0),
        session_id="S1",
        chunk_index=index,
    )


def _response(status_code=200, body=None):
    response = MagicMock()
    response.status_code = status_code
    if body is None:
        response.json.side_effect = ValueError("no body")
    else:
        response.json.return_value = body
    return response


class TestIngestionClient:
    """Tests for IngestionClient."""

    @pytest.fixture
    def session(self):
        return requests.Session()

    @pytest.fixture
    def client(self, session):
        config = IngestionConfig(base_url="https://ingest.example.edu/", auth_token="secret")
        return IngestionClient(config, session=session)

    def test_url_joins_cleanly(self, client):
        assert client.url == "https://ingest.example.edu/api/transcripts"

    def test_auth_header(self, client, session):
        assert session.headers["Authorization"] == "Bearer secret"
        assert session.headers["Content-Type"] == "application/json"

    def test_no_auth_header_without_token(self):
        session = requests.Session()
        IngestionClient(IngestionConfig(), session=session)
        assert "Authorization" not in session.headers

    def test_send_posts_payload(self, client, session):
        with patch.object(session, "post", return_value=_response(201, {"id": 7})) as post:
            result = client.send(_chunk(index=4))

        assert result == {"id": 7}
        post.assert_called_once()
        args, kwargs = post.call_args
        assert args[0] == "https://ingest.example.edu/api/transcripts"
        assert kwargs["json"]["sessionId"] == "S1"
        assert kwargs["json"]["chunkIndex"] == 4
        assert kwargs["json"]["transcript"] == "hello class"
        assert kwargs["timeout"] == 10.0

    def test_send_empty_body(self, client, session):
        with patch.object(session, "post", return_value=_response(204)):
            assert client.send(_chunk()) == {}

    @pytest.mark.parametrize("status", [401, 403, 404, 410])
    def test_rejected_session(self, client, session, status):
        with patch.object(session, "post", return_value=_response(status)):
            with pytest.raises(SessionRejectedError) as exc_info:
                client.send(_chunk())

        assert exc_info.value.status_code == status

    @pytest.mark.parametrize("status", [400, 429, 500, 503])
    def test_other_http_failures(self, client, session, status):
        with patch.object(session, "post", return_value=_response(status)):
            with pytest.raises(SinkDeliveryError) as exc_info:
                client.send(_chunk())

        assert not isinstance(exc_info.value, SessionRejectedError)
        assert exc_info.value.status_code == status

    def test_transport_failure(self, client, session):
        with patch.object(session, "post", side_effect=requests.exceptions.ConnectionError("down")):
            with pytest.raises(SinkDeliveryError, match="down"):
                client.send(_chunk())


class TestTranscriptSink:
    """Tests for TranscriptSink."""

    @pytest.fixture
    def client(self):
        client = MagicMock()
        client.url = "https://ingest.example.edu/api/transcripts"
        return client

    @pytest.fixture
    def sink(self, client, notices):
        return TranscriptSink(client, notices)

    def test_deliver_success(self, sink, client):
        assert sink.deliver(_chunk()) is True

        client.send.assert_called_once()
        assert sink.delivered == 1
        assert sink.recent_deliveries()[0]["outcome"] == "delivered"

    def test_failure_dropped_without_retry(self, sink, client, notices):
        client.send.side_effect = SinkDeliveryError("HTTP 500", status_code=500)

        assert sink.deliver(_chunk()) is False
        assert client.send.call_count == 1
        assert sink.failed == 1
        assert notices.count == 0

    def test_session_rejected_notifies(self, sink, client, notices):
        client.send.side_effect = SessionRejectedError("HTTP 401", status_code=401)

        assert sink.deliver(_chunk()) is False
        assert notices.count == 1
        notice = notices.recent()[0]
        assert notice.code == "sink.session-rejected"
        assert notice.level is NoticeLevel.WARNING
        assert sink.recent_deliveries()[0]["outcome"] == "rejected"

    def test_unexpected_error_contained(self, sink, client):
        client.send.side_effect = RuntimeError("bug")
        assert sink.deliver(_chunk()) is False
        assert sink.failed == 1

    def test_submit_does_not_block_on_slow_delivery(self, sink, client):
        release = threading.Event()
        client.send.side_effect = lambda chunk: release.wait(timeout=5.0)
        sink.start()
        try:
            for i in range(3):
                sink.submit(_chunk(index=i))
            assert sink.get_stats()["delivered"] == 0
        finally:
            release.set()
            sink.stop()

        assert sink.delivered == 3

    def test_stop_drains_queue_in_order(self, sink, client):
        sent = []
        client.send.side_effect = lambda chunk: sent.append(chunk.chunk_index)
        sink.start()
        for i in range(5):
            sink.submit(_chunk(index=i))
        sink.stop()

        assert sent == [0, 1, 2, 3, 4]
        assert not sink.is_running()

    def test_submit_before_start_is_kept(self, sink, client):
        sink.submit(_chunk())
        assert sink.get_stats()["pending"] == 1

        sink.start()
        sink.stop()
        assert sink.delivered == 1

    def test_start_twice(self, sink):
        sink.start()
        thread = sink._thread
        sink.start()
        assert sink._thread is thread
        sink.stop()

    def test_stop_when_not_running(self, sink):
        sink.stop()
        assert not sink.is_running()

    def test_recent_deliveries_newest_first(self, sink):
        for i in range(3):
            sink.deliver(_chunk(index=i))

        assert [d["chunk_index"] for d in sink.recent_deliveries(limit=2)] == [2, 1]

    def test_repeated_rejections_notify_once(self, sink, client, notices):
        """Test a run of rejected chunks posts a single notice."""
        client.send.side_effect = SessionRejectedError("HTTP 401", status_code=401)

        for i in range(5):
            sink.deliver(_chunk(index=i))

        assert sink.failed == 5
        assert notices.count == 1

    def test_rejection_notice_rearmed_after_success(self, sink, client, notices):
        rejected = SessionRejectedError("HTTP 403", status_code=403)
        client.send.side_effect = [rejected, rejected, None, rejected]

        for i in range(4):
            sink.deliver(_chunk(index=i))

        assert sink.delivered == 1
        assert notices.count == 2

    def test_full_queue_drops_chunk(self, client, notices):
        """Test submit never blocks when nothing is draining the queue."""
        sink = TranscriptSink(client, notices, max_pending=2)

        for i in range(5):
            sink.submit(_chunk(index=i))

        stats = sink.get_stats()
        assert stats["pending"] == 2
        assert stats["dropped"] == 3

        sink.start()
        sink.stop()
        assert sink.delivered == 2
