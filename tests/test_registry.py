from __future__ import annotations

import threading

import pytest

from gastown_mail import registry as registry_mod
from gastown_mail.config import clear_settings_cache
from gastown_mail.registry import DEFAULT_PREFIX, PrefixRegistry, default_registry, set_default_registry


def test_prefix_for_falls_back_to_default():
    reg = PrefixRegistry()
    assert reg.prefix_for("gastown") == DEFAULT_PREFIX
    reg.register("gs", "gastown")
    assert reg.prefix_for("gastown") == "gs"
    assert reg.rig_for("gs") == "gastown"
    assert len(reg) == 1


def test_register_rejects_empty_values():
    reg = PrefixRegistry()
    with pytest.raises(ValueError):
        reg.register("", "gastown")
    with pytest.raises(ValueError):
        reg.register("gs", "")


def test_register_keeps_mapping_one_to_one():
    reg = PrefixRegistry.from_pairs([("gs", "gastown"), ("bd", "beads")])
    reg.register("gt2", "gastown")
    assert reg.rig_for("gs") is None
    assert reg.prefix_for("gastown") == "gt2"

    reg.register("bd", "beads-v2")
    assert reg.prefix_for("beads") == DEFAULT_PREFIX
    assert reg.snapshot() == {"gt2": "gastown", "bd": "beads-v2"}


def test_snapshot_is_a_copy():
    reg = PrefixRegistry.from_pairs([("gs", "gastown")])
    snap = reg.snapshot()
    snap["xx"] = "other"
    assert reg.rig_for("xx") is None


def test_is_known_session():
    reg = PrefixRegistry.from_pairs([("gs", "gastown"), ("my-rig", "myrig")])
    assert reg.is_known_session("hq-mayor")
    assert reg.is_known_session("hq-deacon")
    assert reg.is_known_session("gs-Toast")
    assert reg.is_known_session("my-rig-witness")
    assert not reg.is_known_session("gs")
    assert not reg.is_known_session("xx-Toast")
    assert not reg.is_known_session("my-Toast")
    assert not reg.is_known_session("")


def test_default_registry_loads_from_settings(isolated_env, monkeypatch):
    monkeypatch.setenv("GT_RIG_PREFIXES", "gs:gastown, bd:beads, bogus")
    clear_settings_cache()
    set_default_registry(None)
    reg = default_registry()
    assert reg.snapshot() == {"gs": "gastown", "bd": "beads"}
    assert default_registry() is reg
    assert registry_mod.prefix_for("beads") == "bd"
    assert registry_mod.is_known_session("gs-Toast")


def test_set_default_registry_swaps_and_resets(isolated_env):
    replacement = PrefixRegistry.from_pairs([("zz", "zeta")])
    set_default_registry(replacement)
    assert default_registry() is replacement
    registry_mod.register("yy", "ypsilon")
    assert replacement.prefix_for("ypsilon") == "yy"

    set_default_registry(None)
    assert default_registry() is not replacement
    assert default_registry().prefix_for("zeta") == DEFAULT_PREFIX


def test_concurrent_swaps_never_expose_partial_registry(isolated_env):
    pairs = [(f"p{i}", f"rig{i}") for i in range(20)]
    full = PrefixRegistry.from_pairs(pairs)
    empty = PrefixRegistry()
    set_default_registry(full)

    stop = threading.Event()
    seen_sizes: set[int] = set()
    errors: list[Exception] = []

    def reader() -> None:
        try:
            while not stop.is_set():
                reg = default_registry()
                seen_sizes.add(len(reg.snapshot()))
                reg.is_known_session("p3-Toast")
        except Exception as exc:
            errors.append(exc)

    def writer() -> None:
        for i in range(200):
            set_default_registry(full if i % 2 else empty)

    readers = [threading.Thread(target=reader) for _ in range(4)]
    for t in readers:
        t.start()
    writer()
    stop.set()
    for t in readers:
        t.join()

    assert not errors
    assert seen_sizes <= {0, len(pairs)}


def test_concurrent_registrations_all_land():
    reg = PrefixRegistry()

    def add(start: int) -> None:
        for i in range(start, start + 50):
            reg.register(f"p{i}", f"rig{i}")

    threads = [threading.Thread(target=add, args=(n * 50,)) for n in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(reg) == 200
    assert all(reg.prefix_for(f"rig{i}") == f"p{i}" for i in range(200))


def test_hq_sessions_known_with_empty_registry(isolated_env):
    assert PrefixRegistry().is_known_session("hq-x")
    assert not PrefixRegistry().is_known_session("gt-x")

    set_default_registry(PrefixRegistry())
    assert registry_mod.is_known_session("hq-x")
    assert registry_mod.is_known_session("hq-")
