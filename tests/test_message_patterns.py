"""
Tests for the message-pattern handlers and the TCP transport carrying them.
"""

import asyncio
import json
from contextlib import contextmanager

import pytest

from user_service.core.exceptions import ConflictError, NotFoundError, ValidationError
from user_service.transports.messages import NO_HANDLER_MESSAGE, UnknownPatternError, dispatch
from user_service.transports.tcp import (
    FrameError, JsonSocketDecoder, MessagePatternServer, encode_frame, error_payload, js_length,
    pattern_command
)

NEW_USER = {"email": "a@x.com", "username": "abc", "password": "secret1"}


class TestDispatch:

    def test_create_and_get(self, service):
        created = dispatch(service, "create_user", NEW_USER)

        assert created["id"] == 1
        assert created["isActive"] is True
        assert "password" not in created and "hashedPassword" not in created
        assert dispatch(service, "get_user", 1) == created

    def test_results_are_json_ready(self, service):
        dispatch(service, "create_user", NEW_USER)

        users = dispatch(service, "get_users", None)

        assert json.loads(json.dumps(users)) == users

    def test_create_validation_errors(self, service):
        with pytest.raises(ValidationError) as exc_info:
            dispatch(service, "create_user", {"email": "nope", "username": "ab", "password": "1"})

        assert set(exc_info.value.fields) == {"email", "username", "password"}

    def test_create_conflict(self, service):
        dispatch(service, "create_user", NEW_USER)

        with pytest.raises(ConflictError):
            dispatch(service, "create_user", {**NEW_USER, "username": "def"})

    def test_get_users_lists_active_only(self, service):
        dispatch(service, "create_user", NEW_USER)
        second = dispatch(service, "create_user", {**NEW_USER, "email": "b@x.com", "username": "bcd"})
        dispatch(service, "delete_user", 1)

        assert [u["id"] for u in dispatch(service, "get_users", None)] == [second["id"]]

    def test_get_user_requires_integer_id(self, service):
        with pytest.raises(ValidationError):
            dispatch(service, "get_user", "1")

    def test_get_user_not_found(self, service):
        with pytest.raises(NotFoundError):
            dispatch(service, "get_user", 5)

    def test_lookup_by_email_and_username_are_stripped(self, service):
        created = dispatch(service, "create_user", NEW_USER)

        assert dispatch(service, "get_user_by_email", "a@x.com") == created
        assert dispatch(service, "get_user_by_username", "abc") == created

    def test_lookup_misses_return_none(self, service):
        assert dispatch(service, "get_user_by_email", "zz@x.com") is None
        assert dispatch(service, "get_user_by_username", "zzz") is None

    def test_update_user(self, service):
        dispatch(service, "create_user", NEW_USER)

        updated = dispatch(service, "update_user", {"id": 1, "partial": {"lastName": "Smith"}})

        assert updated["lastName"] == "Smith"
        assert updated["username"] == "abc"

    def test_update_user_accepts_legacy_payload_key(self, service):
        dispatch(service, "create_user", NEW_USER)

        updated = dispatch(service, "update_user", {"id": 1, "updateUserDto": {"isActive": False}})

        assert updated["isActive"] is False

    def test_update_user_reports_every_error(self, service):
        with pytest.raises(ValidationError) as exc_info:
            dispatch(service, "update_user", {"id": "x", "partial": {"username": "a"}})

        assert set(exc_info.value.fields) == {"id", "username"}

    def test_update_user_requires_partial(self, service):
        with pytest.raises(ValidationError) as exc_info:
            dispatch(service, "update_user", {"id": 1})

        assert exc_info.value.fields == ["partial"]

    def test_soft_then_hard_delete(self, service):
        dispatch(service, "create_user", NEW_USER)

        assert dispatch(service, "delete_user", 1) is None
        assert dispatch(service, "get_user", 1)["isActive"] is False
        assert dispatch(service, "hard_delete_user", 1) is None
        with pytest.raises(NotFoundError):
            dispatch(service, "get_user", 1)

    @pytest.mark.parametrize("cmd", ["unknown", None])
    def test_unknown_pattern(self, service, cmd):
        with pytest.raises(UnknownPatternError) as exc_info:
            dispatch(service, cmd, None)

        assert exc_info.value.message == NO_HANDLER_MESSAGE


class TestFraming:

    def test_encode_frame(self):
        assert encode_frame({"a": 1}) == b'7#{"a":1}'

    def test_encode_escapes_non_ascii(self):
        frame = encode_frame({"name": "José"})
        length, _, body = frame.decode("ascii").partition("#")
        assert int(length) == len(body)
        assert json.loads(body) == {"name": "José"}

    def test_decode_split_and_batched_frames(self):
        decoder = JsonSocketDecoder()
        data = encode_frame({"n": 1}) + encode_frame({"n": 2}) + encode_frame({"n": 3})

        assert decoder.feed(data[:3]) == []
        assert decoder.feed(data[3:12]) == [{"n": 1}]
        assert decoder.feed(data[12:]) == [{"n": 2}, {"n": 3}]

    def test_decode_multibyte_split_across_chunks(self):
        decoder = JsonSocketDecoder()
        body = json.dumps({"name": "José"}, ensure_ascii=False)
        data = f"{len(body)}#{body}".encode("utf-8")
        split = data.index("é".encode("utf-8")) + 1

        assert decoder.feed(data[:split]) == []
        assert decoder.feed(data[split:]) == [{"name": "José"}]

    def test_length_counts_utf16_code_units(self):
        decoder = JsonSocketDecoder()
        body = json.dumps({"firstName": "😀"}, ensure_ascii=False)
        first = f"{len(body) + 1}#{body}".encode("utf-8")

        messages = decoder.feed(first + encode_frame({"n": 2}))

        assert messages == [{"firstName": "😀"}, {"n": 2}]

    def test_encode_length_matches_javascript(self):
        frame = encode_frame({"firstName": "😀"})
        length, _, body = frame.decode("ascii").partition("#")

        assert int(length) == js_length(body) == len(body)
        assert js_length("😀") == 2
        assert JsonSocketDecoder().feed(frame) == [{"firstName": "😀"}]

    def test_length_splitting_a_surrogate_pair(self):
        body = json.dumps({"a": "😀"}, ensure_ascii=False)
        data = f"{body.index('😀') + 1}#{body}".encode("utf-8")

        with pytest.raises(FrameError):
            JsonSocketDecoder().feed(data)

    @pytest.mark.parametrize("data", [b"abc#{}", b"12x", b'2#{x'])
    def test_corrupted_frames(self, data):
        with pytest.raises(FrameError):
            JsonSocketDecoder().feed(data)

    @pytest.mark.parametrize("pattern,expected", [
        ({"cmd": "get_user"}, "get_user"),
        ('{"cmd":"get_user"}', "get_user"),
        ("get_user", "get_user"),
        ({"other": "x"}, None),
        (None, None),
    ])
    def test_pattern_command(self, pattern, expected):
        assert pattern_command(pattern) == expected

    def test_error_payload_hides_unexpected_details(self):
        assert error_payload(RuntimeError("secret")) == {
            "statusCode": 500, "error": "Internal Server Error", "message": "Internal server error"
        }
        assert error_payload(NotFoundError("User with ID 3 not found"))["statusCode"] == 404


@pytest.fixture
def server_factory(service):
    @contextmanager
    def scope():
        yield service
    return scope


class TestPacketHandling:

    @pytest.mark.asyncio
    async def test_reply_carries_response(self, server_factory):
        server = MessagePatternServer(server_factory)

        reply = await server.handle_packet({"pattern": {"cmd": "create_user"}, "data": NEW_USER, "id": "r1"})

        assert reply["id"] == "r1"
        assert reply["isDisposed"] is True
        assert reply["response"]["username"] == "abc"

    @pytest.mark.asyncio
    async def test_reply_carries_error(self, server_factory):
        server = MessagePatternServer(server_factory)

        reply = await server.handle_packet({"pattern": '{"cmd":"get_user"}', "data": 9, "id": "r2"})

        assert reply == {
            "id": "r2",
            "err": {"statusCode": 404, "error": "Not Found", "message": "User with ID 9 not found"},
            "isDisposed": True,
        }

    @pytest.mark.asyncio
    async def test_unexpected_failure_is_generic(self, service):
        @contextmanager
        def broken():
            raise RuntimeError("pool exhausted")
            yield service

        reply = await MessagePatternServer(broken).handle_packet(
            {"pattern": {"cmd": "get_users"}, "id": "r3"}
        )

        assert reply["err"]["statusCode"] == 500
        assert "pool exhausted" not in json.dumps(reply)

    @pytest.mark.asyncio
    async def test_events_get_no_reply(self, server_factory, gateway):
        server = MessagePatternServer(server_factory)

        assert await server.handle_packet({"pattern": {"cmd": "create_user"}, "data": NEW_USER}) is None
        assert await server.handle_packet(["not", "a", "packet"]) is None
        assert gateway.rows == {}


@pytest.mark.asyncio
async def test_tcp_round_trip(server_factory):
    server = await MessagePatternServer(server_factory, host="127.0.0.1", port=0).start()
    try:
        reader, writer = await asyncio.open_connection("127.0.0.1", server.bound_port)
        writer.write(encode_frame({"pattern": {"cmd": "create_user"}, "data": NEW_USER, "id": "1"}))
        writer.write(encode_frame({"pattern": {"cmd": "get_user_by_email"}, "data": "a@x.com", "id": "2"}))
        await writer.drain()

        decoder = JsonSocketDecoder()
        replies = {}
        while len(replies) < 2:
            chunk = await asyncio.wait_for(reader.read(4096), timeout=5)
            assert chunk, "server closed the connection early"
            for reply in decoder.feed(chunk):
                replies[reply["id"]] = reply

        assert replies["1"]["response"]["id"] == 1
        assert "err" not in replies["1"]
        writer.close()
        await writer.wait_closed()
    finally:
        await server.stop()
