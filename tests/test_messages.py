import json

import pytest

from lazarus.errors import InvalidIdentityError, MalformedMessageError, ResponseCode, UnknownNamespaceError
from lazarus.messages import OutboundBatch, OutputEvent, OutputKind, WorkerOp, parse_inbound


def _body(**fields: object) -> str:
    data = {"workerID": "W1", "counter": 1, "op": "continue", "payload": {}}
    data.update(fields)
    return json.dumps(data)


def test_parse_inbound_reads_wire_fields() -> None:
    message = parse_inbound(
        _body(op="spawn", serverID="Workers", clientID=7, payload={"reset": True, "options": {"a": 1}}),
        namespace="Workers",
    )

    assert message.worker_id == "W1"
    assert message.counter == 1
    assert message.op is WorkerOp.SPAWN
    assert message.payload.reset is True
    assert message.payload.options == {"a": 1}
    assert message.client_id == 7
    assert message.wants_reset


def test_parse_inbound_accepts_mapping_and_defaults_payload() -> None:
    message = parse_inbound({"workerID": "W1", "counter": 3, "op": "continue"}, namespace="Workers")

    assert message.payload.text is None
    assert message.payload.save is False
    assert not message.wants_reset


def test_continue_with_reset_flag_is_not_a_reset() -> None:
    message = parse_inbound(_body(payload={"reset": True}), namespace="Workers")
    assert not message.wants_reset


@pytest.mark.parametrize("raw", ["{not json", "[1, 2]", b"\xff\xfe", "42"])
def test_parse_inbound_rejects_non_object_bodies(raw: str | bytes) -> None:
    with pytest.raises(MalformedMessageError) as exc_info:
        parse_inbound(raw, namespace="Workers")
    assert exc_info.value.code is ResponseCode.BAD_REQUEST


def test_parse_inbound_rejects_foreign_namespace() -> None:
    with pytest.raises(UnknownNamespaceError) as exc_info:
        parse_inbound(_body(serverID="Elsewhere"), namespace="Workers")
    assert exc_info.value.code is ResponseCode.NOT_FOUND


def test_parse_inbound_can_require_namespace() -> None:
    with pytest.raises(UnknownNamespaceError):
        parse_inbound(_body(), namespace="Workers", require_namespace=True)


@pytest.mark.parametrize("worker_id", [None, "", 12])
def test_parse_inbound_rejects_bad_identity(worker_id: object) -> None:
    with pytest.raises(InvalidIdentityError):
        parse_inbound(_body(workerID=worker_id), namespace="Workers")


def test_namespace_is_checked_before_identity() -> None:
    with pytest.raises(UnknownNamespaceError):
        parse_inbound(_body(workerID="", serverID="Elsewhere"), namespace="Workers")


@pytest.mark.parametrize(
    "fields",
    [
        {"counter": "2"},
        {"counter": True},
        {"op": "msgin"},
        {"payload": {"text": 5}},
        {"payload": {"options": [1, 2]}},
    ],
)
def test_parse_inbound_rejects_malformed_fields(fields: dict[str, object]) -> None:
    with pytest.raises(MalformedMessageError):
        parse_inbound(_body(**fields), namespace="Workers")


def test_outbound_batch_wire_shape() -> None:
    batch = OutboundBatch(
        worker_id="W1",
        counter=4,
        items=(
            OutputEvent.control("started", connectionId="c1"),
            OutputEvent.text_out("2\n"),
            OutputEvent.debug("careful", 3),
        ),
        client_id="client",
        server_id="Workers",
    )

    assert batch.to_wire() == {
        "workerID": "W1",
        "counter": 4,
        "clientID": "client",
        "serverID": "Workers",
        "items": [
            {"kind": "control", "data": {"id": "started", "connectionId": "c1"}},
            {"kind": "text", "text": "2\n"},
            {"kind": "debug", "text": "careful", "level": 3},
        ],
    }
    assert json.loads(batch.to_json())["items"][1]["text"] == "2\n"


def test_output_event_kinds() -> None:
    assert OutputEvent.text_out("x").kind is OutputKind.TEXT
    assert OutputEvent.debug("x").level is None
    assert OutputEvent.control("started").data == {"id": "started"}
