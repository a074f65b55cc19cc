import pytest

from app.stockbox.core.error_catalog import AppError
from app.stockbox.services.vendor_parsers import (
    BlockLayout,
    ColumnLayout,
    ParseOptions,
    SingleBoxLayout,
    parse_vendor_document,
)
from tests.stockbox_helpers import make_catalog


def _teltonika_grid():
    return [
        ["FMC920", None, None, None, "FMB920"],
        ["Box No", "Carton", "IMEI", None, "Box No", "Carton", "IMEI"],
        ["FMC9202MAUWU-041-2", None, "356938035643809", None, "FMB920-17", None, "356938035643810"],
        [None, None, 356938035643811.0, None, None, None, "35693803564381"],
    ]


def test_block_layout_detects_blocks_and_dedupes_near_columns():
    header = ["box no", "box no.", "imei", "", "", "", "box no", "serial"]
    blocks = BlockLayout.detect_blocks(header)
    assert [block["start"] for block in blocks] == [0, 6]
    assert blocks[0]["serial_col"] == 2
    assert blocks[0]["fallback_col"] == 1
    assert blocks[1]["fallback_col"] is None


def test_teltonika_block_layout():
    result = parse_vendor_document("Teltonika", _teltonika_grid(), make_catalog())
    assert result.vendor == "teltonika"
    assert [(label.device, label.box_code, label.serials) for label in result.labels] == [
        ("FMB920", "17", ("356938035643810",)),
        ("FMC920", "041-2", ("356938035643809", "356938035643811")),
    ]
    assert result.counts == {"devices": 2, "boxes": 2, "items": 3}
    assert result.debug["header_row"] == 1


def test_teltonika_without_header_is_malformed():
    with pytest.raises(AppError) as excinfo:
        parse_vendor_document("teltonika", [["foo", "bar"], ["1", "2"]], make_catalog())
    assert excinfo.value.error.code == "MALFORMED_DOCUMENT"


def test_quicklink_column_layout_guesses_device_from_carton():
    grid = [
        ["Packing list"],
        ["No", "IMEI", "Carton No"],
        [1, "356938035643809", "CNHYCV200XEU202501"],
        [2, "356938035643810", "CNHYCV200XEU202501"],
        [3, "356938035643811", "CNHYCV200XEU202502"],
    ]
    result = parse_vendor_document("quicklink", grid, make_catalog())
    assert result.debug["device_guess"] == "CV200"
    assert [(label.device, label.box_code, len(label.serials)) for label in result.labels] == [
        ("CV200", "02501", 2),
        ("CV200", "02502", 1),
    ]


def test_quicklink_unknown_guess_lists_unresolved_device():
    grid = [
        ["IMEI", "Carton No"],
        ["356938035643809", "CNHYCV200XEU202501"],
    ]
    with pytest.raises(AppError) as excinfo:
        parse_vendor_document("quicklink", grid, make_catalog(["FMC920"]))
    assert excinfo.value.error.code == "UNKNOWN_DEVICES"
    assert excinfo.value.details["unknown_devices"] == ["CV200"]


def test_column_layout_box_code_from_carton():
    assert ColumnLayout.box_code_from_carton("CNHYCV200XEU202501") == "02501"
    assert ColumnLayout.box_code_from_carton("AB12") == "AB12"
    assert ColumnLayout.box_code_from_carton(None) is None


def test_digitalmatter_explicit_columns():
    grid = [
        ["Product", "Serial", "BoxID"],
        ["Oyster3 4G", "356938035643809", "B-1"],
        ["Oyster3 4G", "356938035643810", "B-1"],
        ["Oyster3 4G", "not a serial", "B-1"],
        ["FMC920", "356938035643811", "B-2"],
    ]
    result = parse_vendor_document("digitalmatter", grid, make_catalog())
    assert [(label.device, label.box_code, label.qty) for label in result.labels] == [
        ("FMC920", "B-2", 1),
        ("Oyster3", "B-1", 2),
    ]


def test_digitalmatter_unknown_product_fails_whole_document():
    grid = [
        ["Product", "Serial", "BoxID"],
        ["Oyster3", "356938035643809", "B-1"],
        ["Mystery", "356938035643810", "B-1"],
    ]
    with pytest.raises(AppError) as excinfo:
        parse_vendor_document("digitalmatter", grid, make_catalog())
    assert excinfo.value.details == {"vendor": "digitalmatter", "unknown_devices": ["Mystery"]}


def test_truster_single_box_requires_device():
    grid = [["IMEI"], ["356938035643809"]]
    with pytest.raises(AppError) as excinfo:
        parse_vendor_document("truster", grid, make_catalog())
    assert excinfo.value.error.code == "VALIDATION_ERROR"


def test_truster_single_box_synthetic_code_is_stable():
    grid = [["IMEI"], ["356938035643810"], ["356938035643809"]]
    result = parse_vendor_document("truster", grid, make_catalog(), ParseOptions(device="Truster Tag"))
    assert len(result.labels) == 1
    label = result.labels[0]
    assert label.device == "Truster Tag"
    assert label.box_code == SingleBoxLayout.synthetic_box_code(["356938035643809", "356938035643810"])
    assert label.box_code.startswith("SB-")
    assert len(label.box_code) == 11


def test_truster_single_box_uses_given_box_code():
    grid = [["IMEI"], ["356938035643809"]]
    result = parse_vendor_document(
        "truster", grid, make_catalog(), ParseOptions(device="Truster Tag", box_code="TT-1")
    )
    assert result.labels[0].box_code == "TT-1"


def test_unknown_vendor():
    with pytest.raises(AppError) as excinfo:
        parse_vendor_document("acme", [["IMEI"]], make_catalog())
    assert excinfo.value.error.code == "UNKNOWN_VENDOR"
    assert "teltonika" in excinfo.value.details["supported"]


def test_document_without_valid_serials_is_malformed():
    grid = [["Product", "Serial", "BoxID"], ["FMC920", "123", "B-1"]]
    with pytest.raises(AppError) as excinfo:
        parse_vendor_document("digitalmatter", grid, make_catalog())
    assert excinfo.value.error.code == "MALFORMED_DOCUMENT"
