from app import database
from app.services.supervisor import CircuitBreaker, IdleSupervisor, OPEN
from tests.factories import auth


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


async def broken_ping():
    raise ConnectionError("database unreachable")


async def test_health_and_root(client):
    assert (await client.get("/")).status_code == 200
    body = (await client.get("/health")).json()
    assert body["status"] == "ok"
    assert body["circuit"] == "closed"


async def test_breaker_opens_after_repeated_probe_failures(client, app, alice, monkeypatch):
    clock = FakeClock()
    app.state.circuit_breaker = CircuitBreaker(failure_threshold=3, reset_timeout=30, clock=clock)
    monkeypatch.setattr(database, "ping", broken_ping)

    for _ in range(3):
        response = await client.get("/api/projects", headers=auth(alice))
        assert response.status_code == 503
        assert response.json()["retryAfter"] == 30
    assert app.state.circuit_breaker.state == OPEN

    clock.now = 10
    rejected = await client.get("/api/projects", headers=auth(alice))
    assert rejected.status_code == 503
    assert rejected.json()["retryAfter"] == 20
    assert rejected.headers["retry-after"] == "20"

    # The health endpoint is never gated
    assert (await client.get("/health")).status_code == 200

    # Database back: after the reset window a probe goes through and closes the breaker
    monkeypatch.undo()
    clock.now = 31
    recovered = await client.get("/api/projects", headers=auth(alice))
    assert recovered.status_code == 200
    assert app.state.circuit_breaker.state == "closed"


async def test_requests_count_as_activity(client, app):
    clock = FakeClock()
    app.state.idle_supervisor = IdleSupervisor(idle_timeout=60, clock=clock)
    clock.now = 59
    await client.get("/")
    clock.now = 100
    assert not app.state.idle_supervisor.is_idle()
    clock.now = 119
    assert app.state.idle_supervisor.is_idle()
