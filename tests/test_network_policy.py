from __future__ import annotations

import pytest

from packdeploy_core.errors import NetworkDeniedError
from packdeploy_core.network import NetAllowList, NetworkPolicy, normalize_host


@pytest.mark.parametrize(
    ("target", "expected"),
    [
        ("registry.local", "registry.local"),
        ("registry.local:5000", "registry.local"),
        ("https://user:pw@registry.local:443/v2/repo", "registry.local"),
        ("[::1]:8080", "::1"),
        ("::1", "::1"),
        ("10.1.2.3:1883", "10.1.2.3"),
    ],
)
def test_normalize_host_strips_scheme_port_and_userinfo(target: str, expected: str) -> None:
    assert normalize_host(target) == expected


def test_allowlist_parses_hosts_and_networks() -> None:
    allowlist = NetAllowList.parse("Registry.Local, 10.0.0.0/8, mqtt://broker.lan:1883, 192.168.1.5")

    assert allowlist.hosts == ("registry.local", "broker.lan")
    assert len(allowlist.networks) == 2
    assert allowlist.is_allowed("registry.local:5000")
    assert allowlist.is_allowed("10.20.30.40")
    assert allowlist.is_allowed("192.168.1.5")
    assert not allowlist.is_allowed("192.168.1.6")
    assert not allowlist.is_allowed("evil.example.com")


def test_allowlist_accepts_iterables_and_skips_blank_entries() -> None:
    allowlist = NetAllowList.parse(["", "  ", "fd00::/8", "host.a"])

    assert allowlist.hosts == ("host.a",)
    assert allowlist.is_allowed("[fd00::1]:443")
    assert NetAllowList.parse(None).is_empty()
    assert NetAllowList.parse("").is_empty()


def test_offline_only_denies_before_anything_else() -> None:
    policy = NetworkPolicy(allow_network=True, offline_only=True, allowlist=NetAllowList.parse("registry.local"))

    with pytest.raises(NetworkDeniedError, match="offline-only"):
        policy.enforce("registry.local")


def test_network_disabled_denies() -> None:
    with pytest.raises(NetworkDeniedError, match="network access disabled"):
        NetworkPolicy().enforce("registry.local")


def test_empty_allowlist_permits_any_host() -> None:
    policy = NetworkPolicy(allow_network=True)

    policy.enforce("anything.example.com")
    assert policy.allowlist_configured is False


def test_allowlist_denies_unlisted_host() -> None:
    policy = NetworkPolicy(allow_network=True, allowlist=NetAllowList.parse("registry.local,10.0.0.0/8"))

    policy.enforce("https://registry.local/v2/")
    policy.enforce("10.9.8.7:1883")
    with pytest.raises(NetworkDeniedError, match="not in allowlist"):
        policy.enforce("other.local")
