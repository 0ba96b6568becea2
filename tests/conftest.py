# tests/conftest.py
import os
import sys
import asyncio
import json
from datetime import datetime, timedelta, timezone
from urllib.parse import urlencode

import pytest
from jose import jwt
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

sys.path.append(os.path.abspath("."))

from addressbook.database import Base, get_db
from addressbook.core import get_settings
from addressbook import models  # noqa: F401
from main import app


# DB (SQLite in-memory for tests)
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


# Fresh tables for every test, so row counts and pages are predictable
@pytest.fixture(autouse=True)
def prepare_database():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def db_session():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


# One event loop for the WHOLE pytest session
@pytest.fixture(scope="session")
def session_loop():
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    yield loop
    loop.close()


@pytest.fixture()
def upload_dir(tmp_path, monkeypatch):
    monkeypatch.setattr(get_settings(), "UPLOAD_DIR", str(tmp_path))
    return tmp_path


def make_token(sub="google-oauth2|1", nickname="alice", expires_in=3600, **claims):
    """Sign a token the way the identity provider would."""
    settings = get_settings()
    payload = {
        "sub": sub,
        "nickname": nickname,
        "exp": datetime.now(timezone.utc) + timedelta(seconds=expires_in),
        **claims,
    }
    if sub is None:
        del payload["sub"]
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def auth_header(sub="google-oauth2|1", nickname="alice"):
    return {"Authorization": f"Bearer {make_token(sub, nickname)}"}


@pytest.fixture()
def token_factory():
    return make_token


@pytest.fixture()
def auth():
    return auth_header


# Simple ASGI response/client
class SimpleResponse:
    def __init__(
        self, status_code: int, body: bytes, headers: list[tuple[bytes, bytes]]
    ):
        self.status_code = status_code
        self._body = body
        self.content = body
        self.headers = {k.decode(): v.decode() for k, v in headers}

    def json(self):
        return json.loads(self._body.decode())


class SimpleClient:
    """
    Important:
    - uses ONE shared session loop (passed from fixture)
    - does NOT call asyncio.run()
    - does NOT close the loop
    """

    def __init__(self, app, loop):
        self.app = app
        self.loop = loop

    def request(
        self,
        method: str,
        path: str,
        params=None,
        data=None,
        headers=None,
        files=None,
    ):
        headers = dict(headers or {})
        body_bytes = b""

        path, _, query = path.partition("?")
        if params:
            query = "&".join(filter(None, [query, urlencode(params)]))

        if files:
            boundary = "TESTBOUNDARY"
            parts: list[bytes] = []
            for name, value in (data or {}).items():
                parts.append(
                    (
                        f"--{boundary}\r\n"
                        f'Content-Disposition: form-data; name="{name}"\r\n\r\n'
                        f"{value}\r\n"
                    ).encode()
                )
            for name, (filename, content, content_type) in files.items():
                disposition = f'form-data; name="{name}"; filename="{filename}"'
                part_headers = (
                    f"--{boundary}\r\n"
                    f"Content-Disposition: {disposition}\r\n"
                    f"Content-Type: {content_type or 'application/octet-stream'}\r\n\r\n"
                )
                parts.append(part_headers.encode() + content + b"\r\n")
            parts.append(f"--{boundary}--\r\n".encode())
            body_bytes = b"".join(parts)
            headers["content-type"] = f"multipart/form-data; boundary={boundary}"

        elif data is not None:
            body_bytes = urlencode(data, doseq=True).encode()
            headers.setdefault("content-type", "application/x-www-form-urlencoded")

        raw_headers = [(k.lower().encode(), v.encode()) for k, v in headers.items()]
        scope = {
            "type": "http",
            "method": method.upper(),
            "path": path,
            "raw_path": path.encode(),
            "root_path": "",
            "scheme": "http",
            "server": ("testserver", 80),
            "headers": raw_headers,
            "query_string": query.encode(),
            "client": ("testclient", 5000),
        }

        async def receive():
            nonlocal body_bytes
            chunk, body_bytes = body_bytes, b""
            return {"type": "http.request", "body": chunk, "more_body": False}

        response_body = bytearray()
        response_status = 500
        response_headers: list[tuple[bytes, bytes]] = []

        async def send(message):
            nonlocal response_status, response_headers
            if message["type"] == "http.response.start":
                response_status = message["status"]
                response_headers = message.get("headers", [])
            elif message["type"] == "http.response.body":
                response_body.extend(message.get("body", b""))

        # ensure the loop is the current one
        asyncio.set_event_loop(self.loop)
        self.loop.run_until_complete(self.app(scope, receive, send))
        return SimpleResponse(response_status, bytes(response_body), response_headers)

    def get(self, path: str, params=None, headers=None):
        return self.request("GET", path, params=params, headers=headers)

    def post(self, path: str, data=None, headers=None, files=None):
        return self.request("POST", path, data=data, headers=headers, files=files)


# Client fixture: override DB dependency per test
@pytest.fixture()
def client(db_session, session_loop):
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    try:
        yield SimpleClient(app, loop=session_loop)
    finally:
        app.dependency_overrides.clear()
