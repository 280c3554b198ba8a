import importlib
import json

import fakeredis
import pytest
import redis

from elasticache_probe import app
from elasticache_probe.session import SESSION_KEY


def stdout_records(capsys):
    out = capsys.readouterr().out
    return [json.loads(line) for line in out.splitlines() if line.strip()]


def test_success_response_shape(fake_cluster, context, capsys):
    response = app.lambda_handler({}, context)

    assert response["statusCode"] == 200
    assert response["statusDescription"] == "200 Ok"
    assert response["isBase64Encoded"] is False
    assert response["headers"] == {"Content-Type": "application/json"}

    body = json.loads(response["body"])
    assert set(body) == {"write", "read"}
    assert body["write"] >= 0
    assert body["read"] >= 0


def test_success_emits_one_ecl_line(fake_cluster, context, capsys):
    app.lambda_handler({}, context)

    records = stdout_records(capsys)
    assert len(records) == 1
    record = records[0]
    assert record["type"] == "ECL"
    assert record["requestId"] == "req-0001"
    for phase in ("connection", "write", "read"):
        assert record[phase] >= 0


def test_record_is_written_under_session_key(fake_cluster, context):
    app.lambda_handler({}, context)

    client = fake_cluster[0]
    keys = client.keys(f"{SESSION_KEY}:*")
    assert len(keys) == 1
    stored = client.hgetall(keys[0])
    assert set(stored) == {"name", "email", "ip_address", "company", "job"}
    assert all(isinstance(v, str) and v for v in stored.values())


def test_each_invocation_uses_a_new_key_and_connection(fake_cluster, context):
    app.lambda_handler({}, context)
    app.lambda_handler({}, context)

    assert len(fake_cluster) == 2
    assert len(fake_cluster[0].keys(f"{SESSION_KEY}:*")) == 2


def test_connection_closed_after_success(fake_cluster, context):
    app.lambda_handler({}, context)
    assert fake_cluster[0].closed


def test_caller_request_id_is_logged(fake_cluster, context, caplog, capsys):
    with caplog.at_level("INFO"):
        app.lambda_handler({"request_id": "caller-42"}, context)

    assert "Caller Request ID: caller-42" in caplog.text
    # caller id does not leak into the ECL record
    assert stdout_records(capsys)[0]["requestId"] == "req-0001"


def test_none_event_is_treated_as_empty(fake_cluster, context):
    response = app.lambda_handler(None, context)
    assert response["statusCode"] == 200


def test_unreachable_store_returns_error(monkeypatch, context, capsys):
    def refuse(*args, **kwargs):
        raise redis.exceptions.ConnectionError("Error 111 connecting to probe.example:6379. Connection refused.")

    monkeypatch.setattr(app, "RedisCluster", refuse)

    response = app.lambda_handler({}, context)

    assert response == {"error": "Error 111 connecting to probe.example:6379. Connection refused."}
    records = stdout_records(capsys)
    assert len(records) == 1
    record = records[0]
    assert record["type"] == "ECL-ERROR"
    assert record["requestId"] == "req-0001"
    assert record["error"] == response["error"]
    assert "T" in record["timestamp"]


def test_write_failure_aborts_and_closes(fake_cluster, monkeypatch, context, capsys):
    def broken_hset(self, *args, **kwargs):
        raise redis.exceptions.ResponseError("OOM command not allowed when used memory > 'maxmemory'")

    monkeypatch.setattr(fakeredis.FakeRedis, "hset", broken_hset)

    response = app.lambda_handler({}, context)

    assert list(response) == ["error"]
    assert "OOM" in response["error"]
    assert fake_cluster[0].closed
    records = stdout_records(capsys)
    assert [r["type"] for r in records] == ["ECL-ERROR"]


def test_read_failure_returns_error(fake_cluster, monkeypatch, context, capsys):
    def broken_hgetall(self, name):
        raise redis.exceptions.TimeoutError("Timeout reading from socket")

    monkeypatch.setattr(fakeredis.FakeRedis, "hgetall", broken_hgetall)

    response = app.lambda_handler({}, context)

    assert response == {"error": "Timeout reading from socket"}
    assert [r["type"] for r in stdout_records(capsys)] == ["ECL-ERROR"]


@pytest.mark.parametrize("port", ["6379", "7000"])
def test_connect_uses_configured_endpoint(monkeypatch, port):
    seen = {}

    def factory(**kwargs):
        seen.update(kwargs)
        return object()

    monkeypatch.setattr(app, "REDIS_ENDPOINT", "probe.abc123.clustercfg.euc1.cache.amazonaws.com")
    monkeypatch.setattr(app, "REDIS_PORT", int(port))
    monkeypatch.setattr(app, "RedisCluster", factory)

    app.connect()

    assert seen["host"] == "probe.abc123.clustercfg.euc1.cache.amazonaws.com"
    assert seen["port"] == int(port)
    assert seen["decode_responses"] is True


class BrokenClient:
    """Cluster client whose write and close both fail."""

    def hset(self, *args, **kwargs):
        raise redis.exceptions.ConnectionError("write failed")

    def close(self):
        raise RuntimeError("close failed")


def test_close_failure_does_not_mask_error_response(monkeypatch, context, capsys, caplog):
    monkeypatch.setattr(app, "RedisCluster", lambda **kwargs: BrokenClient())

    response = app.lambda_handler({}, context)

    assert response == {"error": "write failed"}
    assert [r["type"] for r in stdout_records(capsys)] == ["ECL-ERROR"]
    assert "close failed" in caplog.text


def test_close_failure_after_success_still_returns_200(fake_cluster, monkeypatch, context):
    def broken_close(self):
        raise RuntimeError("close failed")

    monkeypatch.setattr(fakeredis.FakeRedis, "close", broken_close)

    response = app.lambda_handler({}, context)

    assert response["statusCode"] == 200


@pytest.mark.parametrize("value, expected", [("", 6379), ("7001", 7001)])
def test_port_from_environment(monkeypatch, value, expected):
    monkeypatch.setenv("ELASTICACHE_PORT", value)

    module = importlib.reload(app)

    assert module.REDIS_PORT == expected
