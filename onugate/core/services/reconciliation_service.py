"""Reconciliation of the upstream statuses feed with the details feed.

The two feeds describe the same ONUs but are fetched independently and keyed
differently, so each status record is matched against the details with an
ordered list of matcher tiers:

1. external id or serial number (trimmed, case-insensitive);
2. the (board, port, onu) position, compared as strings.

The first tier that finds a detail wins; inside a tier the first detail in
feed order wins. No match is a normal outcome and yields default values.
"""

import logging
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from onugate.domain.models.devices import (
    DEFAULT_LOW_SIGNAL_THRESHOLD_DBM,
    DEFAULT_NAME,
    DEFAULT_OLT_NAME,
    DEFAULT_SIGNAL,
    DEFAULT_TYPE,
    DEFAULT_VLAN,
    DeviceDetailRecord,
    DeviceStatusRecord,
    OnuStats,
    UnifiedRecord,
)


logger = logging.getLogger(__name__)

Matcher = Callable[[Dict[str, Any], Dict[str, Any]], bool]

OFFLINE_STATES = ("offline", "disabled")
WAITING_STATES = ("unauthorized", "waiting", "unconfigured")


def _identity(value: Any) -> Optional[str]:
    """Trimmed, lower-cased identity value; None when missing or blank."""
    if value is None:
        return None
    text = str(value).strip().lower()
    return text or None


def _position_part(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value)
    return text if text != "" else None


def match_external_id(status: Dict[str, Any], detail: Dict[str, Any]) -> bool:
    wanted = _identity(status.get("unique_external_id"))
    return wanted is not None and wanted == _identity(detail.get("unique_external_id"))


def match_serial(status: Dict[str, Any], detail: Dict[str, Any]) -> bool:
    wanted = _identity(status.get("sn"))
    return wanted is not None and wanted == _identity(detail.get("sn"))


def match_position(status: Dict[str, Any], detail: Dict[str, Any]) -> bool:
    for field_name in ("board", "port", "onu"):
        wanted = _position_part(status.get(field_name))
        if wanted is None or wanted != _position_part(detail.get(field_name)):
            return False
    return True


# Tiers in priority order; matchers inside a tier are OR-ed.
DEFAULT_MATCHER_TIERS: Sequence[Sequence[Matcher]] = (
    (match_external_id, match_serial),
    (match_position,),
)


def find_match(
    status: DeviceStatusRecord,
    details: Sequence[DeviceDetailRecord],
    tiers: Sequence[Sequence[Matcher]] = DEFAULT_MATCHER_TIERS,
) -> Optional[DeviceDetailRecord]:
    """Returns the detail record matching ``status``, or None."""
    for tier in tiers:
        for detail in details:
            if any(matcher(status, detail) for matcher in tier):
                return detail
    return None


def _first_vlan(detail: Dict[str, Any]) -> Any:
    ports = detail.get("service_ports") or []
    if isinstance(ports, list) and ports and isinstance(ports[0], dict):
        return ports[0].get("vlan")
    return None


def merge_record(status: DeviceStatusRecord, detail: Optional[DeviceDetailRecord]) -> UnifiedRecord:
    """Copies ``status`` and adds the descriptive fields of ``detail`` (or defaults)."""
    found = detail or {}
    merged = dict(status)
    merged["name"] = found.get("name") or DEFAULT_NAME
    merged["type"] = found.get("onu_type_name") or DEFAULT_TYPE
    merged["vlan"] = _first_vlan(found) or DEFAULT_VLAN
    merged["olt_name"] = found.get("olt_name") or DEFAULT_OLT_NAME
    merged["signal_1310"] = found.get("signal_1310") or status.get("signal_1310") or DEFAULT_SIGNAL
    merged["signal_1490"] = found.get("signal_1490") or status.get("signal_1490") or DEFAULT_SIGNAL
    if found.get("signal") and not status.get("signal"):
        merged["signal"] = found["signal"]
    return merged


def reconcile(
    status_feed: Iterable[DeviceStatusRecord],
    details_feed: Iterable[DeviceDetailRecord],
    tiers: Sequence[Sequence[Matcher]] = DEFAULT_MATCHER_TIERS,
) -> List[UnifiedRecord]:
    """Fuses the statuses feed with the details feed, one output per status record.

    Inputs are not modified and every call builds a new list.
    """
    details = [d for d in details_feed if isinstance(d, dict)]
    unified = []
    unmatched = 0
    for status in status_feed:
        if not isinstance(status, dict):
            continue
        detail = find_match(status, details, tiers)
        if detail is None:
            unmatched += 1
        unified.append(merge_record(status, detail))
    if unmatched:
        logger.debug(f"{unmatched} of {len(unified)} ONUs have no matching details")
    return unified


def parse_dbm(value: Any) -> Optional[float]:
    """Reads an optical level like '-27.9' or '-27.9 dBm'; None if not numeric."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip().lower().replace("dbm", "").strip()
    try:
        return float(text)
    except ValueError:
        return None


def is_low_signal(value: Any, threshold: float = DEFAULT_LOW_SIGNAL_THRESHOLD_DBM) -> bool:
    level = parse_dbm(value)
    return level is not None and level <= threshold


def _status_of(record: Dict[str, Any]) -> str:
    return str(record.get("status") or "").strip().lower()


def find_low_signal(
    records: Iterable[UnifiedRecord],
    threshold: float = DEFAULT_LOW_SIGNAL_THRESHOLD_DBM,
) -> List[UnifiedRecord]:
    """ONUs that are offline/disabled or receive at or below ``threshold`` dBm on 1310/1490 nm."""
    return [
        record for record in records
        if _status_of(record) in OFFLINE_STATES
        or is_low_signal(record.get("signal_1310"), threshold)
        or is_low_signal(record.get("signal_1490"), threshold)
    ]


def rx_power(record: Dict[str, Any]) -> Optional[float]:
    """Receive power used by the statistics: 1310 nm if numeric, else the generic signal."""
    level = parse_dbm(record.get("signal_1310"))
    if level is None:
        level = parse_dbm(record.get("signal"))
    return level


def compute_stats(
    records: Iterable[UnifiedRecord],
    threshold: float = DEFAULT_LOW_SIGNAL_THRESHOLD_DBM,
) -> OnuStats:
    """Counts ONUs per connectivity bucket plus those at or below ``threshold`` dBm."""
    stats = OnuStats(total=0, online=0, offline=0, waiting=0, lowsignal=0)
    for record in records:
        stats["total"] += 1
        status = _status_of(record)
        if status == "online":
            stats["online"] += 1
        elif status == "offline":
            stats["offline"] += 1
        elif status in WAITING_STATES:
            stats["waiting"] += 1
        level = rx_power(record)
        if level is not None and level <= threshold:
            stats["lowsignal"] += 1
    return stats


class ReconciliationService:
    """Reconciliation engine with its matcher tiers and low-signal threshold bound."""

    def __init__(
        self,
        low_signal_threshold: float = DEFAULT_LOW_SIGNAL_THRESHOLD_DBM,
        tiers: Sequence[Sequence[Matcher]] = DEFAULT_MATCHER_TIERS,
    ):
        self.low_signal_threshold = low_signal_threshold
        self.tiers = tuple(tuple(tier) for tier in tiers)
        logger.info(f"ReconciliationService initialized: low_signal_threshold={low_signal_threshold} dBm")

    def reconcile(
        self,
        status_feed: Iterable[DeviceStatusRecord],
        details_feed: Iterable[DeviceDetailRecord],
    ) -> List[UnifiedRecord]:
        return reconcile(status_feed, details_feed, self.tiers)

    def low_signal(
        self,
        status_feed: Iterable[DeviceStatusRecord],
        details_feed: Iterable[DeviceDetailRecord],
    ) -> List[UnifiedRecord]:
        return find_low_signal(self.reconcile(status_feed, details_feed), self.low_signal_threshold)

    def stats(
        self,
        status_feed: Iterable[DeviceStatusRecord],
        details_feed: Iterable[DeviceDetailRecord],
    ) -> OnuStats:
        return compute_stats(self.reconcile(status_feed, details_feed), self.low_signal_threshold)
