"""Core service for ONU inventory, diagnostics and provisioning.

Orchestrates the upstream client and the reconciliation engine into the
operations a front end needs. Every method returns a result dict carrying a
``status`` flag; gateway failures are logged and mapped to
``{"status": False, "error": ...}`` here so callers never see raw exceptions.
"""

import logging
from typing import Any, Dict, Mapping, Optional

from onugate.core.services.reconciliation_service import ReconciliationService
from onugate.domain.errors import GatewayError
from onugate.domain.models.common import Result
from onugate.domain.models.devices import extract_device_list
from onugate.infrastructure.resilience.rate_limit_signals import is_failed, result_message
from onugate.infrastructure.upstream.client import UpstreamClient
from onugate.infrastructure.upstream.endpoints import BULK_DETAILS, ONU_STATUSES

logger = logging.getLogger(__name__)

# Fixed fields of the upstream authorization body.
AUTHORIZE_DEFAULTS = {
    "pon_type": "gpon",
    "onu_mode": "Routing",
    "custom_profile": "",
    "tag_transform_mode": "translate",
    "use_other_all_tls_vlan": 1,
    "odb": "None",
    "onu_external_id": "auto",
    "upload_speed_profile": "50M",
    "download_speed_profile": "100M",
}

WAN_STATIC_DEFAULTS = {
    "configuration_method": "OMCI",
    "ip_protocol": "ipv4ipv6",
    "ipv6_address_mode": "None",
}
WAN_STATIC_FIELDS = ("ipv4_address", "subnet_mask", "gateway", "dns1", "dns2")


def _as_int(value: Any) -> Optional[int]:
    """int(value) for numeric input; None for missing or non-numeric values."""
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(str(value).strip())
    except ValueError:
        return None


def _failure(message: str, **extra: Any) -> Result:
    return {"status": False, "error": message, **extra}


class OnuService:
    """Orchestrates ONU reads, reconciliation and provisioning actions."""

    def __init__(
        self,
        upstream: UpstreamClient,
        reconciliation: ReconciliationService,
        olt_map: Optional[Mapping[str, int]] = None,
    ):
        """Initializes the OnuService with its dependencies.

        Args:
            upstream: Client used for every upstream read and action.
            reconciliation: Engine fusing the statuses and details feeds.
            olt_map: OLT display names (any case) to upstream OLT ids.
        """
        self.upstream = upstream
        self.reconciliation = reconciliation
        self.olt_map: Dict[str, int] = {str(k).upper(): int(v) for k, v in (olt_map or {}).items()}
        logger.info(f"OnuService initialized with {len(self.olt_map)} known OLT(s)")

    # --- Reads ---

    async def _read(self, kind: str, params: Optional[Mapping[str, Any]] = None, **kwargs: Any) -> Result:
        try:
            return await self.upstream.fetch(kind, params, **kwargs)
        except GatewayError as e:
            logger.error(f"Error reading {kind}: {e}")
            return _failure(str(e))

    async def _feeds(self):
        """Fetches the statuses feed and the bulk details feed.

        Returns:
            (statuses, details, failure) where ``failure`` is the result to
            return when the statuses feed is unavailable.
        """
        statuses = await self._read(ONU_STATUSES)
        if is_failed(statuses):
            return [], [], statuses
        details = await self._read(BULK_DETAILS)
        if is_failed(details):
            # Statuses alone are still useful; unmatched records get defaults.
            logger.warning(f"ONU details unavailable, reconciling without them: {result_message(details)}")
        return extract_device_list(statuses), extract_device_list(details), None

    async def list_onus(self) -> Result:
        """Every ONU from the statuses feed enriched with its details."""
        statuses, details, failure = await self._feeds()
        if failure is not None:
            return failure
        merged = self.reconciliation.reconcile(statuses, details)
        logger.info(f"Reconciled {len(merged)} ONUs against {len(details)} detail records")
        return {"status": True, "total": len(merged), "response": merged}

    async def get_onus_details(self, force: bool = False) -> Result:
        return await self._read(BULK_DETAILS, use_cache=not force)

    async def get_unconfigured_onus(self) -> Result:
        return await self._read("get_unconfigured_onus")

    async def get_olts(self) -> Result:
        return await self._read("get_olts")

    async def get_olt_vlans(self, olt_id: Any) -> Result:
        return await self._read("get_vlans", path_id=olt_id)

    async def get_onu_optical_power(self, onu_id: Any) -> Result:
        return await self._read("get_onu_optical_power", {"id": onu_id})

    async def get_olts_temperature(self) -> Result:
        data = await self._read("get_olts_uptime_and_temperature")
        if is_failed(data):
            return data
        olts = data.get("response") if isinstance(data.get("response"), list) else []
        return {"status": True, "total": len(olts), "olts": olts}

    async def get_low_signal_onus(self) -> Result:
        """ONUs offline/disabled or at or below the low-signal threshold."""
        statuses, details, failure = await self._feeds()
        if failure is not None:
            return failure
        onus = self.reconciliation.low_signal(statuses, details)
        return {"status": True, "total": len(onus), "onus": onus}

    async def get_stats(self) -> Result:
        statuses, details, failure = await self._feeds()
        if failure is not None:
            return failure
        stats = self.reconciliation.stats(statuses, details)
        return {"status": True, **stats}

    async def force_refresh(self) -> Result:
        outcome = await self.upstream.force_refresh()
        if not outcome["ok"]:
            return _failure("Upstream limit reached or unavailable; cache left unchanged. Try again later.")
        return {
            "status": True,
            "refreshed": True,
            "total": outcome["total"],
            "message": f"Cache updated with {outcome['total']} ONUs.",
        }

    # --- Actions ---

    async def _act(self, action: str, params: Optional[Mapping[str, Any]] = None, **kwargs: Any) -> Result:
        try:
            return await self.upstream.mutate(action, params, **kwargs)
        except GatewayError as e:
            return _failure(str(e))

    async def enable_onu(self, onu_id: Any, extra: Optional[Mapping[str, Any]] = None) -> Result:
        return await self._act("enable_onu", {"id": onu_id, **dict(extra or {})})

    async def disable_onu(self, onu_id: Any, extra: Optional[Mapping[str, Any]] = None) -> Result:
        return await self._act("disable_onu", {"id": onu_id, **dict(extra or {})})

    def resolve_olt_id(self, payload: Mapping[str, Any]) -> Optional[int]:
        """Explicit ``olt_id`` first, then the ``olt`` name through the OLT map."""
        explicit = _as_int(payload.get("olt_id"))
        if explicit:
            return explicit
        name = payload.get("olt")
        if not name:
            return None
        return self.olt_map.get(str(name).strip().upper())

    def build_authorization(self, payload: Mapping[str, Any], olt_id: int) -> Dict[str, Any]:
        """Maps a front-end authorization payload to the upstream form body."""
        vlan = _as_int(payload.get("vlan_id"))
        return {
            **AUTHORIZE_DEFAULTS,
            "olt_id": olt_id,
            "pon_type": payload.get("pon_type") or AUTHORIZE_DEFAULTS["pon_type"],
            "board": _as_int(payload.get("board")),
            "port": _as_int(payload.get("port")),
            "sn": payload.get("sn"),
            "onu_type": payload.get("onu_type"),
            "onu_mode": payload.get("onu_mode") or AUTHORIZE_DEFAULTS["onu_mode"],
            "vlan": vlan,
            "cvlan": vlan,
            "svlan": _as_int(payload.get("svlan")),
            "zone": payload.get("zone"),
            "odb": payload.get("odb_splitter") or AUTHORIZE_DEFAULTS["odb"],
            "name": payload.get("name"),
            "address_or_comment": payload.get("address"),
            "onu_external_id": payload.get("onu_external_id") or AUTHORIZE_DEFAULTS["onu_external_id"],
            "upload_speed_profile": payload.get("upload_speed") or AUTHORIZE_DEFAULTS["upload_speed_profile"],
            "download_speed_profile": payload.get("download_speed") or AUTHORIZE_DEFAULTS["download_speed_profile"],
        }

    async def authorize_onu(self, payload: Mapping[str, Any]) -> Result:
        olt_id = self.resolve_olt_id(payload)
        if not olt_id:
            logger.warning(f"Authorization refused, unknown OLT: {payload.get('olt')!r}")
            return _failure("Unknown OLT.")

        body = self.build_authorization(payload, olt_id)
        logger.info(f"Authorizing ONU {body['sn']} on OLT {olt_id} board {body['board']} port {body['port']}")
        response = await self._act("authorize_onu", body)
        if is_failed(response):
            return _failure(result_message(response) or "Upstream rejected the authorization")
        return {"status": True, "message": "ONU authorized", "response": response}

    async def set_wan_static_ip(self, onu_id: Any, settings: Mapping[str, Any]) -> Result:
        """Configures a static IPv4 WAN on the ONU through OMCI."""
        body = {name: settings.get(name) for name in WAN_STATIC_FIELDS}
        body.update(WAN_STATIC_DEFAULTS)
        logger.info(f"Setting static WAN IP {body['ipv4_address']} on ONU {onu_id}")
        response = await self._act("set_onu_wan_static_ip", body, path_id=onu_id)
        if response.get("status") in (True, "success"):
            return {"status": True, "message": "WAN configuration applied"}
        return _failure(result_message(response) or "Upstream rejected the WAN configuration")

    async def delete_onu(self, external_id: Any) -> Result:
        if external_id is None or str(external_id).strip() == "":
            return _failure("Missing external_id")
        external_id = str(external_id).strip()
        logger.info(f"Deleting ONU {external_id}")
        response = await self._act("delete_onu", path_id=external_id)
        if is_failed(response):
            return _failure("Could not delete the ONU", details=result_message(response) or "unknown error")
        return {"status": True, "message": "ONU deleted", "external_id": external_id}
