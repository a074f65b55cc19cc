import pytest

from app.stockbox.services.device_resolver import (
    canonicalize,
    resolve_device,
    resolve_device_display,
    score_candidate,
    score_pad3,
    score_pad4,
    score_prefix,
    score_reverse_prefix,
    score_trim3,
)
from tests.stockbox_helpers import make_catalog


def test_canonicalize_strips_punctuation_and_case():
    assert canonicalize(" fmc-920 ") == "FMC920"
    assert canonicalize("Truster Tag") == "TRUSTERTAG"
    assert canonicalize(None) == ""


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("FMC920", "FMC920"),
        ("fmc 920", "FMC920"),
        ("FMC9202MAUWU", "FMC920"),
        ("FMC3", "FMC003"),
        ("CV200", "CV200"),
        ("Oyster3 4G", "Oyster3"),
        ("OYST", "Oyster3"),
    ],
)
def test_resolve_device_variants(raw, expected):
    assert resolve_device_display(raw, make_catalog()) == expected


def test_resolve_device_unknown_and_blank():
    catalog = make_catalog()
    assert resolve_device("XYZ123", catalog) is None
    assert resolve_device("", catalog) is None
    assert resolve_device(None, catalog) is None


def test_inactive_devices_are_never_resolved():
    catalog = make_catalog(inactive=("FMC920",))
    assert resolve_device("FMC920", catalog) is None


def test_tie_breaks_on_canonical_name_regardless_of_input_order():
    names = ["FMC920", "FMC130", "FMC003"]
    forward = resolve_device("FMC", make_catalog(names))
    backward = resolve_device("FMC", make_catalog(list(reversed(names))))
    assert forward.display_name == "FMC003"
    assert backward.display_name == "FMC003"


def test_strategy_scores_rank_exact_above_heuristics():
    assert score_candidate("FMC920", "FMC920") == 1000
    assert score_prefix("FMC9202MAUWU", "FMC920") == 906
    assert score_pad3("FMC3", "FMC003") == 850
    assert score_trim3("FMC9201", "FMC920") == 840
    assert score_pad4("TAT1", "TAT0001") == 830
    assert score_reverse_prefix("OYST", "OYSTER3") == 704


def test_short_strings_do_not_prefix_match():
    assert score_prefix("AB123", "AB") == 0
    assert score_reverse_prefix("FM", "FMC920") == 0
