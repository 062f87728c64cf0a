import json

import pytest

from nostrelay.messages import (
    EventTooLargeError,
    MessageKind,
    ProtocolError,
    allowed_to_send,
    auth_challenge_message,
    convert_to_msg,
    eose_message,
    event_message,
    get_header_string,
    get_pubkey,
    notice_message,
    ok_message,
)

EVENT_OBJ = {
    "content": "hello world",
    "created_at": 1691239763,
    "id": "f3ce6798d70e358213ebbeba4886bbdfacf1ecfd4f65ee5323ef5f404de32b86",
    "kind": 1,
    "pubkey": "79be667ef9dcbbac55a06295ce870b07029bfcdb2dce28d959f2815b16f81798",
    "sig": "30ca29e8581eeee75bf838171dec818af5e6de2b74f5337de940f5cc91186534"
    "c0b20d6cf7ad1043a2c51dbd60b979447720a471d346322103c83f6cb66e4e98",
    "tags": [],
}
AUTHOR = EVENT_OBJ["pubkey"]
RECIPIENT = "3bf0c63fcb93463407af97a5e5ee64fa883d107ef9e558472c4eb9aaaefa459d"


def _event_json(**changes):
    obj = dict(EVENT_OBJ)
    obj.update(changes)
    return json.dumps(obj)


def test_parse_event_message():
    text = json.dumps(["EVENT", EVENT_OBJ])
    msg = convert_to_msg(text, None)
    assert msg.kind is MessageKind.EVENT
    assert msg.command == "EVENT"
    assert msg.event.id == EVENT_OBJ["id"]
    assert msg.event.kind == 1


def test_parse_auth_message_is_event_kind():
    msg = convert_to_msg(json.dumps(["AUTH", EVENT_OBJ]), None)
    assert msg.kind is MessageKind.EVENT
    assert msg.command == "AUTH"


def test_parse_req_message():
    msg = convert_to_msg('["REQ","some-id",{}]', None)
    assert msg.kind is MessageKind.REQ
    assert msg.subscription.id == "some-id"
    assert len(msg.subscription.filters) == 1


def test_parse_close_message():
    msg = convert_to_msg('["CLOSE","some-id"]', None)
    assert msg.kind is MessageKind.CLOSE
    assert msg.sub_id == "some-id"
    assert msg.command == "CLOSE"


@pytest.mark.parametrize(
    "text",
    ["not json", "{}", '["REQ"]', '["EVENT",{"id":"abc"}]', '["CLOSE",1]', "[]"],
)
def test_unparseable_messages(text):
    with pytest.raises(ProtocolError):
        convert_to_msg(text, None)


def test_event_too_large():
    text = json.dumps(["EVENT", EVENT_OBJ])
    with pytest.raises(EventTooLargeError) as info:
        convert_to_msg(text, 10)
    assert info.value.size == len(text)


def test_event_size_limit_zero_or_large_is_not_enforced():
    text = json.dumps(["EVENT", EVENT_OBJ])
    assert convert_to_msg(text, 0).kind is MessageKind.EVENT
    assert convert_to_msg(text, len(text)).kind is MessageKind.EVENT


def test_req_is_not_size_checked():
    msg = convert_to_msg('["REQ","some-id",{}]', 5)
    assert msg.kind is MessageKind.REQ


def test_notice_round_trip():
    assert json.loads(notice_message("event exceeded max size")) == [
        "NOTICE",
        "event exceeded max size",
    ]


def test_ok_and_auth_round_trip():
    assert json.loads(ok_message("abc", True, "")) == ["OK", "abc", True, ""]
    assert json.loads(auth_challenge_message("chal")) == ["AUTH", "chal"]


def test_eose_strips_quotes():
    assert json.loads(eose_message('x"y')) == ["EOSE", "xy"]


def test_event_message_wraps_event():
    out = event_message('s"ub', _event_json())
    parsed = json.loads(out)
    assert parsed[0] == "EVENT"
    assert parsed[1] == "sub"
    assert parsed[2] == EVENT_OBJ


def test_allowed_when_protection_disabled():
    assert allowed_to_send("garbage", None, False) is True


def test_non_dm_allowed():
    assert allowed_to_send(_event_json(), None, True) is True


def test_invalid_event_not_allowed():
    assert allowed_to_send("garbage", AUTHOR, True) is False


@pytest.mark.parametrize("kind", [4, 44, 1059])
def test_dm_rules(kind):
    dm = _event_json(kind=kind, tags=[["p", RECIPIENT]])
    assert allowed_to_send(dm, None, True) is False
    assert allowed_to_send(dm, RECIPIENT, True) is True
    assert allowed_to_send(dm, AUTHOR, True) is True
    assert allowed_to_send(dm, "ff" * 32, True) is False


def test_dm_without_recipient_not_allowed():
    dm = _event_json(kind=4, tags=[])
    assert allowed_to_send(dm, AUTHOR, True) is False


def test_get_pubkey():
    assert get_pubkey("pubkey=abc") == "abc"
    assert get_pubkey("a=1&pubkey=abc&b=2") == "abc"
    assert get_pubkey("pubkey=abc&pubkey=def") == "def"
    assert get_pubkey("pubkey=a=b") == "a=b"


def test_get_pubkey_missing():
    assert get_pubkey(None) is None
    assert get_pubkey("") is None
    assert get_pubkey("other=abc") is None
    assert get_pubkey("pubkey=abc&pubkey") is None


def test_get_header_string():
    headers = {"User-Agent": "client/1.0", "Origin": "https://example.com"}
    assert get_header_string("user-agent", headers) == "client/1.0"
    assert get_header_string("Origin", headers) == "https://example.com"
    assert get_header_string("x-real-ip", headers) is None


def test_get_header_string_rejects_non_ascii():
    assert get_header_string("origin", {"origin": "caf\u00e9"}) is None
    assert get_header_string("origin", {"origin": b"ok"}) == "ok"
    assert get_header_string("origin", {"origin": b"\xff"}) is None