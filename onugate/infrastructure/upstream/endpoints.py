"""Upstream endpoint catalogue and cache-key rules."""

from typing import Any, Mapping, Optional
from urllib.parse import urlencode

from onugate.domain.models.common import CacheKey, ResourceKind, UpstreamPath

ENDPOINTS = {
    # OLTs
    "get_olts": "/system/get_olts",
    "get_vlans": "/olt/get_vlans",
    "get_olts_uptime_and_temperature": "/olt/get_olts_uptime_and_env_temperature",
    # ONUs
    "get_onus_statuses": "/onu/get_onus_statuses",
    "get_unconfigured_onus": "/onu/unconfigured_onus",
    "get_onu_by_sn": "/onu/get_onu_by_sn",
    "get_onu_optical_power": "/onu/get_onu_optical_power",
    "get_all_onus_details": "/onu/get_all_onus_details",
    # ONU actions
    "enable_onu": "/onu/enable_onu",
    "disable_onu": "/onu/disable_onu",
    "authorize_onu": "/onu/authorize_onu",
    "delete_onu": "/onu/delete",
    "set_onu_wan_static_ip": "/onu/set_onu_wan_mode_static_ip",
}

BULK_DETAILS = ResourceKind("get_all_onus_details")
ONU_STATUSES = ResourceKind("get_onus_statuses")


def resolve_path(kind: str, path_id: Optional[Any] = None) -> UpstreamPath:
    """Maps a resource kind (and optional trailing id) to an upstream path."""
    try:
        path = ENDPOINTS[kind]
    except KeyError:
        raise ValueError(f"Unknown upstream resource: {kind!r}") from None
    if path_id is not None and str(path_id) != "":
        path = f"{path}/{path_id}"
    return UpstreamPath(path)


def build_cache_key(path: str, params: Optional[Mapping[str, Any]] = None) -> CacheKey:
    """Path plus sorted query parameters, so parameterized reads never share an entry."""
    if not params:
        return CacheKey(path)
    items = sorted((str(k), str(v)) for k, v in params.items() if v is not None)
    return CacheKey(f"{path}?{urlencode(items)}" if items else path)
