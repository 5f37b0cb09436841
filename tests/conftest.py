import pytest
from twisted.internet import defer, task
from twisted.python import log
from twisted.python.failure import Failure

from scumbot.delivery import DeliveryClient

STAMP = "2024.01.01-12.00.00: "
KILLER = "76561198000000001"
VICTIM = "76561198000000002"


def write_log(path, lines, encoding="utf-16", mode="w"):
    """Write ``lines`` the way the game does: UTF-16 with BOM, CRLF endings."""
    with open(path, mode, encoding=encoding, newline="") as f:
        for line in lines:
            f.write(line + "\r\n")
    return str(path)


def kill_line(killer="Killer", victim="Victim", weapon="BP_Weapon_AK47_C", stamp=STAMP):
    return (f"{stamp}Died: {victim} ({VICTIM}), Killer: {killer} ({KILLER}) "
            f"Weapon: {weapon} [Projectile] S[KillerLoc : 100.00, 200.00, 0.00 "
            f"VictimLoc: 1100.00, 200.00, 0.00, Distance: 10.00 m]")


def result_of(d):
    """The result of an already fired Deferred."""
    results = []
    d.addBoth(results.append)
    assert results, "Deferred has not fired"
    if isinstance(results[0], Failure):
        results[0].raiseException()
    return results[0]


def run_now(f, *args, **kwargs):
    return defer.maybeDeferred(f, *args, **kwargs)


class FakeResponse:
    def __init__(self, status_code=200, body=None, headers=None):
        self.status_code = status_code
        self._body = body
        self.headers = headers or {}

    @property
    def content(self):
        return b"" if self._body is None else b"x"

    @property
    def text(self):
        return "" if self._body is None else str(self._body)

    def json(self):
        if self._body is None:
            raise ValueError("no body")
        return self._body


class FakeSession:
    """Answers requests from a queue; an empty queue answers 200 with a fresh id."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def queue(self, *responses):
        self.responses.extend(responses)

    def request(self, method, url, json=None, headers=None, timeout=None):
        self.calls.append((method, url, json, headers, timeout))
        if self.responses:
            response = self.responses.pop(0)
        else:
            response = FakeResponse(200, {"id": str(1000 + len(self.calls))})
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def clock():
    return task.Clock()


@pytest.fixture
def session():
    return FakeSession()


@pytest.fixture
def client(clock, session):
    return DeliveryClient(token="t0ken", session=session, clock=clock, runner=run_now)


@pytest.fixture
def logged():
    """Text of everything logged through twisted.python.log during the test."""
    lines = []

    def observer(event):
        lines.append(log.textFromEventDict(event) or "")
    log.addObserver(observer)
    yield lines
    log.removeObserver(observer)
