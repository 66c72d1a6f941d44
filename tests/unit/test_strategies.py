import pytest
from pydantic import ValidationError

from replaykit.core.models import LocatorBundle
from replaykit.selectors.strategies import (
    DEFAULT_ORDER,
    StrategyRegistry,
    affinity,
    pick_best,
    text_similarity,
)
from replaykit.utils.config import STRATEGY_NAMES, Settings, get_settings


def test_similarity_basics():
    assert text_similarity("Submit", "  submit ") == 1.0
    assert text_similarity("Submit order", "Submit your order") > 0.4
    assert text_similarity("Save", "Delete") < 0.4
    assert text_similarity("", "anything") == 0.0


def test_default_order_matches_settings_names():
    assert DEFAULT_ORDER == STRATEGY_NAMES
    assert StrategyRegistry().names == list(STRATEGY_NAMES)


def test_registry_reorders_and_disables():
    reg = StrategyRegistry(order=["id", "xpath"], disabled=["bounding_box"])
    assert reg.names[:2] == ["id", "xpath"]
    assert "bounding_box" not in reg.names
    assert len(reg) == len(STRATEGY_NAMES) - 1
    assert reg.get("aria").confidence == 0.75
    assert reg.get("bounding_box") is None


def test_registry_rejects_unknown_names():
    with pytest.raises(ValueError):
        StrategyRegistry(order=["xpath", "telepathy"])


def test_registry_from_env_settings(monkeypatch):
    monkeypatch.setenv("FINDER_DISABLED_STRATEGIES", '["css", "fuzzy_text"]')
    monkeypatch.setenv("FINDER_STRATEGY_ORDER", '["placeholder"]')
    get_settings.cache_clear()
    reg = StrategyRegistry.from_settings(get_settings())
    assert reg.names[0] == "placeholder"
    assert "css" not in reg.names and "fuzzy_text" not in reg.names


def test_settings_validate_strategy_names():
    with pytest.raises(ValidationError):
        Settings(FINDER_DISABLED_STRATEGIES=["nope"])


def test_tie_break_prefers_secondary_signal_agreement(make_doc):
    doc = make_doc('<button class="btn">Save</button><button class="btn primary" type="submit">Save</button>')
    first, second = doc.query("button")
    bundle = LocatorBundle(tag="button", xpath="/button", classes=frozenset({"btn", "primary"}), attributes={"type": "submit"})

    assert affinity(bundle, second, doc) > affinity(bundle, first, doc)
    assert pick_best(bundle, [(first, 0.0), (second, 0.0)], doc) is second
    # score beats affinity
    assert pick_best(bundle, [(first, 0.9), (second, 0.5)], doc) is first


def test_tie_break_falls_back_to_document_order(make_doc):
    doc = make_doc("<a>x</a><a>x</a>")
    a1, a2 = doc.query("a")
    bundle = LocatorBundle(tag="a", xpath="/a")
    assert pick_best(bundle, [(a1, 0.0), (a2, 0.0)], doc) is a1
