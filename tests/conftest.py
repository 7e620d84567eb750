"""Shared fixtures: isolated loggers, config, storage, tokens and a fake backend."""

import io
import logging
import time
import uuid

import httpx
import jwt
import pytest

from medclinic.auth import SessionManager
from medclinic.config import AppConfig
from medclinic.gateway import RequestGateway
from medclinic.logger import StructuredLogger
from medclinic.storage import MemoryStorage

BASE_URL = "http://api.test/api"
SIGNING_KEY = "medclinic-test-signing-key-0123456789"


class FakeClock:
    """Manually advanced time source."""

    def __init__(self, start=1_000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class Backend:
    """Records requests and answers them from a route table.

    ``routes`` maps ``(METHOD, path)`` to a ``httpx.Response`` or to a
    callable taking the request.  Unknown routes answer 404.
    """

    def __init__(self):
        self.routes = {}
        self.requests = []

    def add(self, method, path, response):
        self.routes[(method, path)] = response

    def calls(self, method=None, path=None):
        return [
            r
            for r in self.requests
            if (method is None or r.method == method)
            and (path is None or r.url.path == path)
        ]

    def __call__(self, request):
        self.requests.append(request)
        answer = self.routes.get((request.method, request.url.path))
        if answer is None:
            return httpx.Response(404, json={"message": "no route"})
        return answer(request) if callable(answer) else answer

    @property
    def transport(self):
        return httpx.MockTransport(self)


def make_token(exp_offset=3600, **claims):
    payload = {"sub": "42", "exp": int(time.time()) + exp_offset, **claims}
    return jwt.encode(payload, SIGNING_KEY, algorithm="HS256")


@pytest.fixture
def logger():
    return StructuredLogger(
        name=f"test.{uuid.uuid4().hex[:8]}",
        level=logging.DEBUG,
        stream=io.StringIO(),
        log_file="",
    )


@pytest.fixture
def config():
    return AppConfig(
        API_BASE_URL=BASE_URL,
        REQUEST_TIMEOUT_S=5.0,
        CACHE_TTL_S=300.0,
        STORAGE_WATCH_ENABLED=False,
        LOG_FILE="",
    )


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def token():
    return make_token()


@pytest.fixture
def backend():
    return Backend()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def gateway(config, storage, logger, backend, clock):
    return RequestGateway(config, storage, logger, transport=backend.transport, clock=clock)


@pytest.fixture
def navigations():
    return []


@pytest.fixture
def session(storage, logger, gateway, navigations):
    manager = SessionManager(storage, logger, navigator=navigations.append)
    manager.bind_gateway(gateway)
    return manager
