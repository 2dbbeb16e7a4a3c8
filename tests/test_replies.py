import json

from chatmesh.model import ErrorResponse, Room, from_json
from chatmesh.replies import (
    HeaderCarrier,
    marshal_error,
    marshal_response,
    reply_error,
    reply_json,
)


class RecordingMsg:
    def __init__(self, fail=False):
        self.sent = []
        self.fail = fail

    def respond(self, data):
        self.sent.append(data)
        if self.fail:
            raise ConnectionError("connection closed")


def test_marshal_response():
    data = marshal_response(Room(id="1", name="general"))
    got = from_json(Room, data)
    assert got.id == "1"
    assert got.name == "general"


def test_marshal_error():
    got = from_json(ErrorResponse, marshal_error("something went wrong"))
    assert got.error == "something went wrong"


def test_header_carrier():
    headers = {}
    carrier = HeaderCarrier(headers)
    carrier.set("traceparent", "00-abc-def-01")
    assert carrier.get("traceparent") == "00-abc-def-01"
    assert carrier.keys() == ["traceparent"]
    assert headers == {"traceparent": ["00-abc-def-01"]}


def test_header_carrier_missing_key_is_empty():
    assert HeaderCarrier({}).get("traceparent") == ""


def test_header_carrier_set_replaces_values():
    headers = {"traceparent": ["a", "b"]}
    HeaderCarrier(headers).set("traceparent", "c")
    assert headers["traceparent"] == ["c"]


def test_reply_json_sends_encoded_value():
    msg = RecordingMsg()
    reply_json(msg, {"status": "ok"})
    assert msg.sent == [b'{"status":"ok"}']


def test_reply_json_unencodable_value_sends_error():
    msg = RecordingMsg()
    reply_json(msg, {"value": object()})
    assert len(msg.sent) == 1
    assert json.loads(msg.sent[0])["error"].startswith("marshal error: ")


def test_reply_error_sends_error_payload():
    msg = RecordingMsg()
    reply_error(msg, "invalid subject")
    assert msg.sent == [b'{"error":"invalid subject"}']


def test_respond_failure_is_swallowed():
    msg = RecordingMsg(fail=True)
    reply_error(msg, "invalid subject")
    assert msg.sent == [b'{"error":"invalid subject"}']