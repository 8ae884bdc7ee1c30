from __future__ import annotations

import threading

import pytest

from fraudcheck.shared.model_registry import ModelRegistry

CATALOG = ["exp", "pro", "flash", "legacy"]


def test_registry_starts_at_stable_index() -> None:
    registry = ModelRegistry(CATALOG, stable_index=1)

    assert registry.current() == "pro"
    assert registry.next() == "flash"
    # next() is a preview only
    assert registry.current() == "pro"


def test_advance_wraps_and_reset_returns_to_stable() -> None:
    registry = ModelRegistry(CATALOG, stable_index=1)

    assert registry.advance() == "flash"
    assert registry.advance() == "legacy"
    assert registry.advance() == "exp"
    assert registry.next() == "pro"

    assert registry.reset_to_stable() == "pro"
    assert registry.current() == "pro"


def test_fallback_uses_fixed_slot_when_configured() -> None:
    assert ModelRegistry(CATALOG, stable_index=1).fallback() == "flash"

    pinned = ModelRegistry(CATALOG, stable_index=1, fallback_model="legacy")
    assert pinned.fallback() == "legacy"
    pinned.advance()
    assert pinned.fallback() == "legacy"


def test_single_model_catalog_uses_index_zero() -> None:
    registry = ModelRegistry(["only"], stable_index=1)

    assert registry.current() == "only"
    assert registry.next() == "only"
    assert registry.advance() == "only"


@pytest.mark.parametrize(
    "catalog,stable_index",
    [([], 0), (["a", " "], 0), (["a", "b"], 2), (["a", "b"], -1)],
)
def test_invalid_catalog_rejected(catalog, stable_index) -> None:
    with pytest.raises(ValueError):
        ModelRegistry(catalog, stable_index=stable_index)


def test_snapshot_reports_cursor() -> None:
    registry = ModelRegistry(CATALOG, stable_index=1)
    registry.advance()

    snap = registry.snapshot()

    assert snap["catalog"] == CATALOG
    assert snap["current_index"] == 2
    assert snap["current_model"] == "flash"
    assert snap["stable_model"] == "pro"
    assert snap["fallback_model"] == "legacy"


def test_concurrent_rotations_do_not_lose_updates() -> None:
    registry = ModelRegistry(CATALOG, stable_index=1)
    rotations_per_thread = 250
    n_threads = 7
    threads = [
        threading.Thread(target=lambda: [registry.advance() for _ in range(rotations_per_thread)])
        for _ in range(n_threads)
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    total = n_threads * rotations_per_thread
    assert total % len(CATALOG) != 0
    expected_index = (1 + total) % len(CATALOG)
    snap = registry.snapshot()
    assert snap["current_index"] == expected_index
    assert snap["current_index"] != snap["stable_index"]
