"""Device records as exchanged with the upstream API and the reconciliation engine.

The upstream is loosely typed: every field may be missing, and identity fields
(board, port, onu) may arrive as numbers or strings. The TypedDicts below only
document the fields this gateway reads; unknown fields are carried through.
"""

from typing import Any, Dict, List, TypedDict

# Defaults applied to a unified record when no detail record matches.
DEFAULT_NAME = "-"
DEFAULT_TYPE = "-"
DEFAULT_VLAN = "Sin VLAN"
DEFAULT_OLT_NAME = "-"
DEFAULT_SIGNAL = "-"

# Single optical receive threshold (dBm, inclusive) shared by every low-signal view.
DEFAULT_LOW_SIGNAL_THRESHOLD_DBM = -27.5


class DeviceStatusRecord(TypedDict, total=False):
    """Raw per-device state from the statuses feed."""
    sn: str
    unique_external_id: str
    board: Any
    port: Any
    onu: Any
    status: str
    signal: Any


class ServicePort(TypedDict, total=False):
    vlan: Any


class DeviceDetailRecord(TypedDict, total=False):
    """Raw per-device metadata from the details feed."""
    sn: str
    unique_external_id: str
    board: Any
    port: Any
    onu: Any
    name: str
    onu_type_name: str
    service_ports: List[ServicePort]
    olt_name: str
    signal: Any
    signal_1310: Any
    signal_1490: Any


# A status record enriched with name, type, vlan, olt_name, signal_1310 and
# signal_1490. Kept as a plain dict because it carries every status field.
UnifiedRecord = Dict[str, Any]


class OnuStats(TypedDict):
    """Aggregate counters over a set of unified records."""
    total: int
    online: int
    offline: int
    waiting: int
    lowsignal: int


def extract_device_list(result: Any, nested_key: str = "onus") -> List[Dict[str, Any]]:
    """Pulls the device list out of an upstream result envelope.

    The details feed answers ``{"response": {"onus": [...]}}`` on some revisions
    and ``{"response": [...]}`` on others; the statuses feed uses the latter.
    Anything unexpected yields an empty list.
    """
    if not isinstance(result, dict):
        return []
    payload = result.get("response")
    if isinstance(payload, dict):
        payload = payload.get(nested_key)
    if payload is None:
        payload = result.get("data")
    if not isinstance(payload, list):
        return []
    return [item for item in payload if isinstance(item, dict)]
