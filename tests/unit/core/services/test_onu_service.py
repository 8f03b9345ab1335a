import pytest
from unittest.mock import MagicMock

from onugate.core.services.onu_service import OnuService
from onugate.core.services.reconciliation_service import ReconciliationService
from onugate.domain.errors import RateLimitExceeded, TransportError
from onugate.infrastructure.upstream.client import UpstreamClient

STATUSES = {"status": True, "response": [
    {"sn": "HWTC01", "status": "Online", "board": 1, "port": 1, "onu": 1},
    {"sn": "HWTC02", "status": "Offline", "board": 1, "port": 1, "onu": 2},
], "cached": False}
DETAILS = {"status": True, "response": {"onus": [
    {"sn": "hwtc01", "name": "Casa 1", "onu_type_name": "HG8546M", "signal_1310": "-29.0"},
]}, "cached": False}


@pytest.fixture
def upstream():
    return MagicMock(spec=UpstreamClient)


@pytest.fixture
def service(upstream):
    return OnuService(upstream=upstream, reconciliation=ReconciliationService(), olt_map={"Poaquil": 1, "COMALAPA": 3})


def feeds(upstream, statuses=STATUSES, details=DETAILS):
    async def fetch(kind, params=None, **kwargs):
        return {"get_onus_statuses": statuses, "get_all_onus_details": details}[kind]
    upstream.fetch.side_effect = fetch


async def test_list_onus_reconciles_both_feeds(service, upstream):
    feeds(upstream)

    result = await service.list_onus()

    assert result["status"] is True
    assert result["total"] == 2
    assert [r["name"] for r in result["response"]] == ["Casa 1", "-"]


async def test_list_onus_without_statuses_returns_failure(service, upstream):
    feeds(upstream, statuses={"status": False, "error": "upstream limit reached, no cache available"})

    result = await service.list_onus()

    assert result == {"status": False, "error": "upstream limit reached, no cache available"}


async def test_list_onus_tolerates_missing_details(service, upstream):
    feeds(upstream, details={"status": False, "error": "Maintenance"})

    result = await service.list_onus()

    assert result["total"] == 2
    assert {r["name"] for r in result["response"]} == {"-"}


async def test_transport_errors_become_failures(service, upstream):
    upstream.fetch.side_effect = TransportError("connection refused")

    result = await service.get_olts()

    assert result == {"status": False, "error": "connection refused"}


async def test_low_signal_and_stats(service, upstream):
    feeds(upstream)

    low = await service.get_low_signal_onus()
    stats = await service.get_stats()

    assert [r["sn"] for r in low["onus"]] == ["HWTC01", "HWTC02"]
    assert low["total"] == 2
    assert stats == {"status": True, "total": 2, "online": 1, "offline": 1, "waiting": 0, "lowsignal": 1}


async def test_details_force_bypasses_cache(service, upstream):
    upstream.fetch.return_value = DETAILS

    await service.get_onus_details(force=True)

    upstream.fetch.assert_awaited_once_with("get_all_onus_details", None, use_cache=False)


async def test_parameterized_reads(service, upstream):
    upstream.fetch.return_value = {"status": True, "response": []}

    await service.get_olt_vlans(3)
    await service.get_onu_optical_power("HWTC01")

    assert upstream.fetch.await_args_list[0].args == ("get_vlans", None)
    assert upstream.fetch.await_args_list[0].kwargs == {"path_id": 3}
    assert upstream.fetch.await_args_list[1].args == ("get_onu_optical_power", {"id": "HWTC01"})


async def test_olts_temperature_shape(service, upstream):
    upstream.fetch.return_value = {"status": True, "response": [{"id": 1, "env_temp": "41"}], "cached": True}

    result = await service.get_olts_temperature()

    assert result == {"status": True, "total": 1, "olts": [{"id": 1, "env_temp": "41"}]}


async def test_force_refresh_messages(service, upstream):
    upstream.force_refresh.return_value = {"ok": True, "total": 812}
    assert await service.force_refresh() == {
        "status": True,
        "refreshed": True,
        "total": 812,
        "message": "Cache updated with 812 ONUs.",
    }

    upstream.force_refresh.return_value = {"ok": False, "total": 0}
    result = await service.force_refresh()
    assert result["status"] is False
    assert "unchanged" in result["error"]


async def test_enable_and_disable_merge_extra_fields(service, upstream):
    upstream.mutate.return_value = {"status": True}

    await service.enable_onu("HWTC01", {"reason": "paid"})
    await service.disable_onu("HWTC02")

    upstream.mutate.assert_any_await("enable_onu", {"id": "HWTC01", "reason": "paid"})
    upstream.mutate.assert_any_await("disable_onu", {"id": "HWTC02"})


async def test_mutation_rate_limit_is_reported(service, upstream):
    upstream.mutate.side_effect = RateLimitExceeded("Too many requests", attempts=2)

    result = await service.enable_onu(1)

    assert result == {"status": False, "error": "Too many requests"}


async def test_authorize_builds_upstream_body(service, upstream):
    upstream.mutate.return_value = {"status": True, "response": "queued"}
    payload = {
        "olt": "poaquil",
        "board": "1",
        "port": "4",
        "sn": "HWTC0A1B",
        "onu_type": "HG8546M",
        "vlan_id": "120",
        "svlan": "10",
        "zone": "Centro",
        "name": "Casa 7",
        "address": "Calle 3",
    }

    result = await service.authorize_onu(payload)

    assert result["status"] is True
    action, body = upstream.mutate.await_args.args
    assert action == "authorize_onu"
    assert body == {
        "olt_id": 1,
        "pon_type": "gpon",
        "board": 1,
        "port": 4,
        "sn": "HWTC0A1B",
        "onu_type": "HG8546M",
        "custom_profile": "",
        "onu_mode": "Routing",
        "vlan": 120,
        "cvlan": 120,
        "svlan": 10,
        "tag_transform_mode": "translate",
        "use_other_all_tls_vlan": 1,
        "zone": "Centro",
        "odb": "None",
        "name": "Casa 7",
        "address_or_comment": "Calle 3",
        "onu_external_id": "auto",
        "upload_speed_profile": "50M",
        "download_speed_profile": "100M",
    }


async def test_authorize_explicit_olt_id_wins(service, upstream):
    upstream.mutate.return_value = {"status": True}

    await service.authorize_onu({"olt": "COMALAPA", "olt_id": "7", "sn": "X"})

    assert upstream.mutate.await_args.args[1]["olt_id"] == 7


async def test_authorize_unknown_olt_is_refused_locally(service, upstream):
    result = await service.authorize_onu({"olt": "Atlantis", "sn": "X"})

    assert result == {"status": False, "error": "Unknown OLT."}
    upstream.mutate.assert_not_awaited()


async def test_authorize_rejection_surfaces_upstream_text(service, upstream):
    upstream.mutate.return_value = {"status": False, "error": "ONU already authorized"}

    result = await service.authorize_onu({"olt": "COMALAPA", "sn": "X"})

    assert result == {"status": False, "error": "ONU already authorized"}


@pytest.mark.parametrize("upstream_status, ok", [(True, True), ("success", True), (False, False)])
async def test_wan_static_ip(service, upstream, upstream_status, ok):
    upstream.mutate.return_value = {"status": upstream_status, "error": "bad mask"}

    result = await service.set_wan_static_ip("HWTC01", {
        "ipv4_address": "10.0.0.2",
        "subnet_mask": "255.255.255.0",
        "gateway": "10.0.0.1",
        "dns1": "8.8.8.8",
        "dns2": "1.1.1.1",
    })

    assert result["status"] is ok
    action, body = upstream.mutate.await_args.args
    assert action == "set_onu_wan_static_ip"
    assert upstream.mutate.await_args.kwargs == {"path_id": "HWTC01"}
    assert body["configuration_method"] == "OMCI"
    assert body["ip_protocol"] == "ipv4ipv6"
    assert body["ipv6_address_mode"] == "None"
    assert body["ipv4_address"] == "10.0.0.2"


@pytest.mark.parametrize("external_id", ["", "   ", None])
async def test_delete_requires_external_id(service, upstream, external_id):
    result = await service.delete_onu(external_id)

    assert result["status"] is False
    upstream.mutate.assert_not_awaited()


async def test_delete_onu(service, upstream):
    upstream.mutate.return_value = {"status": True}

    result = await service.delete_onu(" EXT-42 ")

    assert result == {"status": True, "message": "ONU deleted", "external_id": "EXT-42"}
    upstream.mutate.assert_awaited_once_with("delete_onu", None, path_id="EXT-42")


async def test_delete_rejection_has_details(service, upstream):
    upstream.mutate.return_value = {"status": False, "message": "Not found"}

    result = await service.delete_onu("EXT-42")

    assert result == {"status": False, "error": "Could not delete the ONU", "details": "Not found"}
