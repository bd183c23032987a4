"""Tests for health and maintenance routes."""

from __future__ import annotations

from conftest import poll_preview


def test_liveness(fastapi_client):
    """Test liveness."""
    response = fastapi_client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "healthy", "service": "preview"}


def test_readiness(fastapi_client):
    """Test readiness."""
    data = fastapi_client.get("/ready").json()

    assert data["status"] == "ready"
    assert data["portRange"] == "3002-3003"


def test_root(fastapi_client):
    """Test root endpoint."""
    data = fastapi_client.get("/").json()
    assert data["service"] == "lpgen-preview"
    assert data["version"]


def test_health_report_idle(fastapi_client):
    """Test health report idle."""
    response = fastapi_client.get("/preview/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] in ("healthy", "warning", "critical")
    assert 0 <= data["score"] <= 100
    assert data["system"]["memory"]["rssMb"] > 0
    preview = data["preview"]
    assert preview["activeSessions"] == 0
    assert preview["maxSessions"] == 2
    assert preview["portUsage"] == {"used": [], "available": [3002, 3003], "total": 2}
    assert preview["sessions"] == []
    assert preview["averageStartupTime"] == 0.0
    # Two free ports is below the low-port threshold
    assert any("Few preview ports" in r for r in data["recommendations"])


def test_health_report_with_running_preview(fastapi_client, make_project):
    """Test health report with running preview."""
    make_project("landing")
    fastapi_client.post("/preview/landing")
    poll_preview(fastapi_client, "landing", "running")

    preview = fastapi_client.get("/preview/health").json()["preview"]

    assert preview["activeSessions"] == 1
    (session,) = preview["sessions"]
    assert session["projectId"] == "landing"
    assert session["port"] == 3002
    assert session["status"] == "running"
    assert session["url"] == "http://localhost:3002"
    assert preview["averageStartupTime"] >= 0


def test_cleanup_action(fastapi_client, make_project):
    """Test cleanup action."""
    make_project("landing")
    fastapi_client.post("/preview/landing")

    response = fastapi_client.post("/preview/health", json={"action": "cleanup"})

    assert response.status_code == 200
    (action,) = response.json()["actions"]
    assert action == {"type": "cleanup", "result": "Stopped 1 preview(s)"}
    assert fastapi_client.get("/preview/landing").json()["status"] == "stopped"


def test_restart_action(fastapi_client):
    """Test restart action."""
    (action,) = fastapi_client.post("/preview/health", json={"action": "restart"}).json()[
        "actions"
    ]
    assert action["type"] == "restart"
    assert action["result"].startswith("Stopped 0 preview(s)")


def test_gc_action(fastapi_client):
    """Test gc action."""
    (action,) = fastapi_client.post("/preview/health", json={"action": "gc"}).json()["actions"]

    assert action["type"] == "gc"
    assert action["result"].startswith("Garbage collection freed")


def test_unknown_action_rejected(fastapi_client):
    """Test unknown action rejected."""
    response = fastapi_client.post("/preview/health", json={"action": "reboot"})
    assert response.status_code == 422
