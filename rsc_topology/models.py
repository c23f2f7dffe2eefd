from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class SynthesizedPort:
    """
    Port of a device reconstructed from an RSC script.

    - vlan_mode: "access" or "trunk"
    - pvid: native/untagged VLAN
    - trunk_vlans: tagged VLAN ids (empty for access ports)
    """

    port_number: int
    interface_name: str
    label: str
    vlan_mode: str = "access"
    pvid: int = 1
    trunk_vlans: List[int] = field(default_factory=list)
    comment: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "portNumber": self.port_number,
            "interfaceName": self.interface_name,
            "label": self.label,
            "comment": self.comment,
            "vlanMode": self.vlan_mode,
            "pvid": self.pvid,
            "trunkVlans": list(self.trunk_vlans),
        }


@dataclass
class SynthesizedVlan:
    """Router-side VLAN with the gateway/subnet/DHCP data recovered for it."""

    vlan_id: int
    name: str
    subnet: Optional[str] = None
    gateway: Optional[str] = None
    dhcp_range: Optional[str] = None
    dhcp_enabled: bool = False
    description: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "vlanId": self.vlan_id,
            "name": self.name,
            "subnet": self.subnet,
            "gateway": self.gateway,
            "dhcpRange": self.dhcp_range,
            "dhcpEnabled": self.dhcp_enabled,
            "description": self.description,
        }


@dataclass
class SynthesizedDevice:
    """A router or switch described by the script. Ports are numbered 1..port_count."""

    name: str
    device_type: str  # "router" | "switch"
    port_count: int
    ports: List[SynthesizedPort]
    vlans: List[SynthesizedVlan] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "deviceType": self.device_type,
            "portCount": self.port_count,
            "ports": [p.to_dict() for p in self.ports],
            "vlans": [v.to_dict() for v in self.vlans],
        }

    def summary(self) -> "DeviceSummary":
        return DeviceSummary(name=self.name, device_type=self.device_type, port_count=self.port_count)


@dataclass
class DeviceSummary:
    name: str
    device_type: str
    port_count: int

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "deviceType": self.device_type, "portCount": self.port_count}


@dataclass
class ParseResult:
    devices: List[SynthesizedDevice]
    warnings: List[str]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "devices": [d.to_dict() for d in self.devices],
            "warnings": list(self.warnings),
        }


@dataclass
class ImportResult:
    """Outcome of one import call. imported_vlans counts created + updated rows."""

    scenario_id: int
    imported_switches: int
    imported_vlans: int
    created_vlans: int
    updated_vlans: int
    warnings: List[str]
    devices: List[DeviceSummary]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "scenarioId": self.scenario_id,
            "importedSwitches": self.imported_switches,
            "importedVlans": self.imported_vlans,
            "createdVlans": self.created_vlans,
            "updatedVlans": self.updated_vlans,
            "warnings": list(self.warnings),
            "devices": [d.to_dict() for d in self.devices],
        }
