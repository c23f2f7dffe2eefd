import json
import logging
from typing import Dict, List, Optional

from .errors import ImportFailedError, NoDevicesError, ScenarioNotFoundError
from .models import ImportResult, ParseResult, SynthesizedDevice, SynthesizedVlan
from .storage import TopologyStore
from .synthesizer import preview

logger = logging.getLogger(__name__)

IMPORT_DESCRIPTION = "Imported from Mikrotik RSC"
NO_DEVICES_MESSAGE = "No devices found in script."

LAYOUT_STEP_X = 300
LAYOUT_Y = 100

_DEVICE_MODELS = {
    "router": "Mikrotik Router",
    "switch": "Mikrotik Switch",
}


def _vlan_fields(scenario_id: int, vlan: SynthesizedVlan) -> Dict[str, object]:
    return {
        "scenario_id": scenario_id,
        "vlan_id": vlan.vlan_id,
        "name": vlan.name,
        "subnet": vlan.subnet,
        "gateway": vlan.gateway,
        "dhcp_enabled": vlan.dhcp_enabled,
        "dhcp_range": vlan.dhcp_range,
        "description": vlan.description,
    }


def _resolve_scenario(
    store: TopologyStore,
    parsed: ParseResult,
    scenario_id: Optional[int],
    scenario_name: Optional[str],
) -> int:
    if scenario_id is not None:
        try:
            existing = store.get_scenario(scenario_id)
        except Exception as exc:  # noqa: BLE001
            logger.error("Looking up scenario %s failed: %s", scenario_id, exc)
            raise ImportFailedError(f"Scenario lookup failed: {exc}") from exc
        if not existing:
            logger.error("Scenario %s not found. Stopping import.", scenario_id)
            raise ScenarioNotFoundError(scenario_id)
        return existing["id"]

    name = scenario_name or parsed.devices[0].name
    try:
        created = store.create_scenario(name, IMPORT_DESCRIPTION)
    except Exception as exc:  # noqa: BLE001
        logger.error("Creating scenario %r failed: %s", name, exc)
        raise ImportFailedError(f"Scenario creation failed: {exc}") from exc
    return created["id"]


def _upsert_vlans(store: TopologyStore, scenario_id: int, devices: List[SynthesizedDevice]) -> Dict[str, int]:
    created = 0
    updated = 0
    for device in devices:
        for vlan in device.vlans:
            fields = _vlan_fields(scenario_id, vlan)
            existing = store.find_vlan(scenario_id, vlan.vlan_id)
            if existing:
                fields["id"] = existing["id"]
                store.upsert_vlan(fields)
                updated += 1
                logger.info("Updated VLAN %s (%s) in scenario %s", vlan.vlan_id, vlan.name, scenario_id)
            else:
                store.upsert_vlan(fields)
                created += 1
                logger.info("Created VLAN %s (%s) in scenario %s", vlan.vlan_id, vlan.name, scenario_id)
    return {"created": created, "updated": updated}


def _create_device(store: TopologyStore, scenario_id: int, device: SynthesizedDevice, ordinal: int) -> int:
    switch_id = store.create_switch(
        {
            "scenario_id": scenario_id,
            "name": device.name,
            "model": _DEVICE_MODELS.get(device.device_type, device.device_type),
            "port_count": device.port_count,
            "is_managed": True,
            "location": "",
            "pos_x": ordinal * LAYOUT_STEP_X,
            "pos_y": LAYOUT_Y,
        }
    )

    for port in device.ports:
        store.create_switch_port(
            {
                "switch_id": switch_id,
                "port_number": port.port_number,
                "label": port.label,
                "vlan_mode": port.vlan_mode,
                "pvid": port.pvid,
                "trunk_vlans": json.dumps(port.trunk_vlans),
            }
        )

    logger.info(
        "Created %s %r (id=%s) with %s ports in scenario %s",
        device.device_type,
        device.name,
        switch_id,
        len(device.ports),
        scenario_id,
    )
    return switch_id


def import_script(
    store: TopologyStore,
    script: Optional[str],
    *,
    scenario_id: Optional[int] = None,
    scenario_name: Optional[str] = None,
) -> ImportResult:
    """
    Parse an RSC script and write its topology into a scenario.

    Flow:
    - Reject blank scripts and scripts that yield no devices (nothing written).
    - Resolve scenario_id, or create a new scenario named scenario_name
      (falling back to the first device name).
    - Upsert every VLAN keyed by (scenario, vlan id). All VLANs are written
      before any switch, because trunk ports refer to them.
    - Create one new switch row per device and one port row per port.
      Devices are never merged with existing switch rows.

    A failing store call aborts the rest of the import with ImportFailedError.
    """
    parsed = preview(script)
    if not parsed.devices:
        logger.error("%s Warnings: %s", NO_DEVICES_MESSAGE, parsed.warnings)
        raise NoDevicesError(NO_DEVICES_MESSAGE, parsed.warnings)

    resolved_id = _resolve_scenario(store, parsed, scenario_id, scenario_name)

    try:
        vlan_counts = _upsert_vlans(store, resolved_id, parsed.devices)
    except Exception as exc:  # noqa: BLE001
        logger.error("VLAN upsert failed for scenario %s: %s", resolved_id, exc)
        raise ImportFailedError(f"VLAN import failed: {exc}") from exc

    imported_switches = 0
    for ordinal, device in enumerate(parsed.devices):
        try:
            _create_device(store, resolved_id, device, ordinal)
        except Exception as exc:  # noqa: BLE001
            logger.error("Creating %s %r failed: %s", device.device_type, device.name, exc)
            raise ImportFailedError(f"Device import failed for {device.name!r}: {exc}") from exc
        imported_switches += 1

    result = ImportResult(
        scenario_id=resolved_id,
        imported_switches=imported_switches,
        imported_vlans=vlan_counts["created"] + vlan_counts["updated"],
        created_vlans=vlan_counts["created"],
        updated_vlans=vlan_counts["updated"],
        warnings=list(parsed.warnings),
        devices=[d.summary() for d in parsed.devices],
    )
    logger.info(
        "Import into scenario %s done: %s devices, %s VLANs (%s new, %s updated)",
        result.scenario_id,
        result.imported_switches,
        result.imported_vlans,
        result.created_vlans,
        result.updated_vlans,
    )
    return result
