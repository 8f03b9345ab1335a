import copy

import pytest

from onugate.core.services.reconciliation_service import (
    DEFAULT_MATCHER_TIERS,
    ReconciliationService,
    compute_stats,
    find_low_signal,
    find_match,
    is_low_signal,
    match_position,
    match_serial,
    parse_dbm,
    reconcile,
)


def test_serial_match_is_case_insensitive():
    """A status 'ABC123' picks up the details of 'abc123'."""
    statuses = [{"sn": "ABC123", "board": "1", "port": "2", "onu": "3", "status": "Online"}]
    details = [{"sn": "abc123", "name": "House 5", "onu_type_name": "HG8245"}]

    result = reconcile(statuses, details)

    assert len(result) == 1
    assert result[0]["name"] == "House 5"
    assert result[0]["type"] == "HG8245"
    assert result[0]["status"] == "Online"


def test_identity_tier_beats_position_tier():
    status = {"sn": "SN-1", "board": 1, "port": 2, "onu": 3}
    by_position = {"sn": "OTHER", "board": "1", "port": "2", "onu": "3", "name": "position"}
    by_serial = {"sn": " sn-1 ", "name": "serial"}

    assert find_match(status, [by_position, by_serial])["name"] == "serial"


def test_external_id_match():
    status = {"unique_external_id": "EXT-9"}
    details = [{"unique_external_id": "ext-9", "name": "by id"}]

    assert reconcile([status], details)[0]["name"] == "by id"


def test_position_match_compares_as_strings():
    status = {"sn": "X", "board": 0, "port": 7, "onu": 12}
    detail = {"sn": "Y", "board": "0", "port": "7", "onu": "12", "name": "slot"}

    assert reconcile([status], [detail])[0]["name"] == "slot"


def test_missing_identities_never_match_each_other():
    status = {"status": "Online"}
    detail = {"name": "anything"}

    assert not match_serial(status, detail)
    assert not match_position(status, detail)
    assert reconcile([status], [detail])[0]["name"] == "-"


def test_first_detail_in_feed_order_wins_within_tier():
    status = {"sn": "A"}
    details = [{"sn": "a", "name": "first"}, {"sn": "A", "name": "second"}]

    assert reconcile([status], details)[0]["name"] == "first"


def test_unmatched_status_gets_defaults():
    result = reconcile([{"sn": "LONELY", "status": "Offline"}], [])

    assert result == [{
        "sn": "LONELY",
        "status": "Offline",
        "name": "-",
        "type": "-",
        "vlan": "Sin VLAN",
        "olt_name": "-",
        "signal_1310": "-",
        "signal_1490": "-",
    }]


def test_vlan_and_signals_come_from_details():
    status = {"sn": "A", "signal_1310": "-22.0"}
    detail = {
        "sn": "A",
        "olt_name": "POAQUIL",
        "service_ports": [{"vlan": 120}, {"vlan": 130}],
        "signal_1490": "-19.5",
    }

    merged = reconcile([status], [detail])[0]

    assert merged["vlan"] == 120
    assert merged["olt_name"] == "POAQUIL"
    assert merged["signal_1310"] == "-22.0"
    assert merged["signal_1490"] == "-19.5"


def test_one_output_per_status_in_order_and_inputs_untouched():
    statuses = [{"sn": "B"}, {"sn": "A"}, {"sn": "B"}]
    details = [{"sn": "A", "name": "a"}, {"sn": "B", "name": "b"}]
    before = (copy.deepcopy(statuses), copy.deepcopy(details))

    result = reconcile(statuses, details)

    assert [r["name"] for r in result] == ["b", "a", "b"]
    assert (statuses, details) == before


def test_reconcile_is_idempotent():
    statuses = [{"sn": "A", "status": "Online"}, {"sn": "Z"}]
    details = [{"sn": "a", "name": "House"}]

    assert reconcile(statuses, details) == reconcile(statuses, details)


def test_custom_tiers_can_disable_position_matching():
    status = {"board": 1, "port": 1, "onu": 1}
    detail = {"board": 1, "port": 1, "onu": 1, "name": "slot"}

    assert reconcile([status], [detail], tiers=DEFAULT_MATCHER_TIERS[:1])[0]["name"] == "-"


@pytest.mark.parametrize("value, expected", [
    ("-27.9", -27.9),
    ("-27.9 dBm", -27.9),
    (-30, -30.0),
    ("-", None),
    (None, None),
    (True, None),
])
def test_parse_dbm(value, expected):
    assert parse_dbm(value) == expected


def test_low_signal_threshold_is_inclusive():
    assert is_low_signal("-27.5")
    assert is_low_signal("-28.0")
    assert not is_low_signal("-27.4")
    assert not is_low_signal("-")


def test_find_low_signal_includes_offline_and_weak_links():
    records = [
        {"sn": "ok", "status": "Online", "signal_1310": "-20", "signal_1490": "-19"},
        {"sn": "off", "status": "Offline", "signal_1310": "-", "signal_1490": "-"},
        {"sn": "dis", "status": " Disabled ", "signal_1310": "-", "signal_1490": "-"},
        {"sn": "weak1310", "status": "Online", "signal_1310": "-29.1", "signal_1490": "-20"},
        {"sn": "weak1490", "status": "Online", "signal_1310": "-20", "signal_1490": "-27.5 dBm"},
    ]

    assert [r["sn"] for r in find_low_signal(records)] == ["off", "dis", "weak1310", "weak1490"]


def test_compute_stats_counts_buckets():
    records = [
        {"status": "Online", "signal_1310": "-20"},
        {"status": "online", "signal_1310": "-28.2"},
        {"status": "Offline", "signal_1310": "-"},
        {"status": "Unconfigured", "signal_1310": "-", "signal": "-30"},
        {"status": "LOS"},
    ]

    assert compute_stats(records) == {"total": 5, "online": 2, "offline": 1, "waiting": 1, "lowsignal": 2}


def test_service_applies_configured_threshold():
    service = ReconciliationService(low_signal_threshold=-25.0)
    statuses = [{"sn": "A", "status": "Online"}]
    details = [{"sn": "A", "signal_1310": "-26"}]

    assert [r["sn"] for r in service.low_signal(statuses, details)] == ["A"]
    assert service.stats(statuses, details)["lowsignal"] == 1
    assert ReconciliationService().stats(statuses, details)["lowsignal"] == 0
