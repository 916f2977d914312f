from __future__ import annotations

import asyncio

import pytest


@pytest.mark.parametrize(
    ("url", "title"),
    [
        ("http://example.com", "example.com"),
        ("https://Sub.Example.com:8443/path?q=1", "sub.example.com"),
        ("http://user:pw@host.example/", "host.example"),
        ("about:blank", "New Tab"),
        ("file:///tmp/index.html", "New Tab"),
        ("example.com", "New Tab"),
        ("", "New Tab"),
        ("http://[::1", "New Tab"),
        ("http://[::1]:8080/", "[::1]"),
        ("http://127.0.0.1:8080/", "127.0.0.1"),
        ("http://bücher.example/", "xn--bcher-kva.example"),
        ("http://example.com:abc/", "New Tab"),
        ("http://example.com:99999/", "New Tab"),
    ],
)
def test_title_from_url_uses_host_or_new_tab(url: str, title: str) -> None:
    from servo_bridge.resolver import title_from_url

    assert title_from_url(url) == title


def test_host_title_resolver_is_async() -> None:
    from servo_bridge.resolver import HostTitleResolver, PageInfo

    info = asyncio.run(HostTitleResolver().resolve("http://foo.com/bar"))
    assert info == PageInfo(title="foo.com")


def test_config_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    from servo_bridge.config import BridgeConfig

    for name in (
        "SERVO_BRIDGE_HOST",
        "SERVO_BRIDGE_PORT",
        "SERVO_BRIDGE_RESOLVE_TIMEOUT",
        "SERVO_BRIDGE_MAX_MESSAGE_BYTES",
        "SERVO_BRIDGE_LOG_LEVEL",
        "SERVO_BRIDGE_TRACE",
    ):
        monkeypatch.delenv(name, raising=False)

    cfg = BridgeConfig.from_env()
    assert cfg.host == "127.0.0.1"
    assert cfg.port == 8080
    assert cfg.resolve_timeout == 10.0
    assert cfg.max_message_bytes == 1_000_000
    assert cfg.log_level == "INFO"
    assert cfg.trace is False
    assert cfg.ws_url == "ws://127.0.0.1:8080"


def test_config_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    from servo_bridge.config import BridgeConfig

    monkeypatch.setenv("SERVO_BRIDGE_HOST", "0.0.0.0")
    monkeypatch.setenv("SERVO_BRIDGE_PORT", "9001")
    monkeypatch.setenv("SERVO_BRIDGE_RESOLVE_TIMEOUT", "2.5")
    monkeypatch.setenv("SERVO_BRIDGE_MAX_MESSAGE_BYTES", "4096")
    monkeypatch.setenv("SERVO_BRIDGE_LOG_LEVEL", "warn")
    monkeypatch.setenv("SERVO_BRIDGE_TRACE", "1")

    cfg = BridgeConfig.from_env()
    assert cfg.host == "0.0.0.0"
    assert cfg.port == 9001
    assert cfg.resolve_timeout == 2.5
    assert cfg.max_message_bytes == 4096
    assert cfg.log_level == "WARNING"
    assert cfg.trace is True


def test_config_invalid_values_fall_back(monkeypatch: pytest.MonkeyPatch) -> None:
    from servo_bridge.config import BridgeConfig

    monkeypatch.setenv("SERVO_BRIDGE_PORT", "not-a-port")
    monkeypatch.setenv("SERVO_BRIDGE_RESOLVE_TIMEOUT", "soon")
    monkeypatch.setenv("SERVO_BRIDGE_MAX_MESSAGE_BYTES", "-5")
    monkeypatch.setenv("SERVO_BRIDGE_LOG_LEVEL", "chatty")

    cfg = BridgeConfig.from_env()
    assert cfg.port == 8080
    assert cfg.resolve_timeout == 10.0
    assert cfg.max_message_bytes == 1_000_000
    assert cfg.log_level == "INFO"


def test_config_out_of_range_port_falls_back(monkeypatch: pytest.MonkeyPatch) -> None:
    from servo_bridge.config import BridgeConfig

    monkeypatch.setenv("SERVO_BRIDGE_PORT", "70000")
    assert BridgeConfig.from_env().port == 8080
