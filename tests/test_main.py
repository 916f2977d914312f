from __future__ import annotations

import socket

import pytest


def test_main_exits_when_bind_fails(monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture) -> None:
    from servo_bridge import main as main_mod

    blocker = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    blocker.bind(("127.0.0.1", 0))
    blocker.listen(1)
    port = blocker.getsockname()[1]

    monkeypatch.setenv("SERVO_BRIDGE_HOST", "127.0.0.1")
    monkeypatch.setenv("SERVO_BRIDGE_PORT", str(port))
    try:
        with caplog.at_level("ERROR", logger="servo.bridge"), pytest.raises(SystemExit) as excinfo:
            main_mod.main()
    finally:
        blocker.close()

    assert excinfo.value.code == 1
    assert any("bridge_start_failed" in rec.getMessage() for rec in caplog.records)
