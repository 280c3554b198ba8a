"""Shared pytest fixtures for the probe tests."""

import fakeredis
import pytest

from elasticache_probe import app


class FakeContext:
    def __init__(self, aws_request_id="req-0001"):
        self.aws_request_id = aws_request_id
        self.function_name = "elasticache-probe"


class ClosingFakeRedis(fakeredis.FakeRedis):
    """FakeRedis that remembers whether the probe closed it."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.closed = False

    def close(self):
        self.closed = True
        super().close()


@pytest.fixture
def context():
    return FakeContext()


@pytest.fixture
def fake_server():
    return fakeredis.FakeServer()


@pytest.fixture
def fake_cluster(monkeypatch, fake_server):
    """Replace the cluster client with in-memory Redis; yields every client created."""
    clients = []

    def factory(*args, **kwargs):
        client = ClosingFakeRedis(server=fake_server, decode_responses=True)
        clients.append(client)
        return client

    monkeypatch.setattr(app, "RedisCluster", factory)
    yield clients
