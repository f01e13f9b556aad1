from request_shield.caching.serialization import (
    is_response_record,
    restore_response,
    serialize_response,
)
from request_shield.types.response import Response


class TestSerializeResponse:
    def test_json_body(self):
        record = serialize_response(Response.make({"a": 1}, status=201), 10.0)
        assert record["status"] == 201
        assert record["data"] == {"a": 1}
        assert record["cached_at"] == 10.0
        assert "content" not in record

    def test_text_body_is_kept(self):
        response = Response(200, {"Content-Type": "text/plain"}, content=b"hello")
        record = serialize_response(response, 0.0)
        assert record["data"] is None
        assert record["content"] == "hello"

    def test_multi_valued_headers(self):
        response = Response(200, {"Set-Cookie": ["a=1", "b=2"]})
        record = serialize_response(response, 0.0)
        assert record["headers"] == {"Set-Cookie": ["a=1", "b=2"]}


class TestRestoreResponse:
    def test_restores_json(self):
        response = restore_response(
            {"status": 200, "headers": {"X-Id": "1"}, "data": {"a": [1, 2]}}
        )
        assert response.status == 200
        assert response.header("x-id") == "1"
        assert response.json("a.1") == 2
        assert response.content == b'{"a": [1, 2]}'

    def test_restores_text(self):
        response = restore_response({"status": 404, "headers": {}, "content": "nope"})
        assert response.text == "nope"
        assert response.json() is None

    def test_restored_response_is_fresh(self):
        response = restore_response({"status": 200, "headers": {}, "data": None})
        assert response.from_cache is False
        assert response.content == b""


class TestIsResponseRecord:
    def test_valid(self):
        assert is_response_record({"status": 200, "headers": {}})
        assert is_response_record({"status": 200})

    def test_invalid(self):
        assert not is_response_record(None)
        assert not is_response_record(["status", 200])
        assert not is_response_record({"status": "200"})
        assert not is_response_record({"status": 200, "headers": []})
