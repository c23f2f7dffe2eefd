import logging
import re
from typing import Dict, List, Optional

from .errors import InvalidScriptError
from .models import ParseResult, SynthesizedDevice, SynthesizedPort, SynthesizedVlan
from .rsc_parser import DhcpPool, IpAddressBinding, ParsedScript, VlanInterface, parse_script

logger = logging.getLogger(__name__)

NO_SECTIONS_WARNING = "No known configuration sections found. Please check the RSC format."

DEFAULT_ROUTER_NAME = "Mikrotik Router"
DEFAULT_SWITCH_NAME = "Mikrotik Switch"

# Reference router hardware (hEX S) has five ethernet ports.
ROUTER_PORT_COUNT = 5
DEFAULT_SWITCH_PORT_COUNT = 8

WAN_LABEL = "WAN"
UPLINK_LABEL = "Trunk zum Switch"

_PORT_RE = re.compile(r"^ether(\d+)$")
_VLAN_PREFIX_RE = re.compile(r"^vlan\d+-")


def port_number(interface: str) -> Optional[int]:
    """Return N for an interface named etherN, otherwise None."""
    m = _PORT_RE.match(interface or "")
    if m:
        return int(m.group(1))
    return None


def default_port(number: int) -> SynthesizedPort:
    name = f"ether{number}"
    return SynthesizedPort(port_number=number, interface_name=name, label=name)


def _vlan_short_name(name: str) -> str:
    """vlan20-trusted -> trusted"""
    return _VLAN_PREFIX_RE.sub("", name)


def _subnet_from_address(address: str, prefix: int) -> Optional[str]:
    """10.20.0.1 + 24 -> 10.20.0.0/24 (last octet zeroed, prefix kept as declared)."""
    parts = address.split(".")
    if len(parts) != 4:
        return None
    parts[3] = "0"
    return f"{'.'.join(parts)}/{prefix}"


def _find_binding(bindings: List[IpAddressBinding], interface: str) -> Optional[IpAddressBinding]:
    for b in bindings:
        if b.interface == interface:
            return b
    return None


def _find_pool(pools: List[DhcpPool], short_name: str) -> Optional[DhcpPool]:
    if not short_name:
        return None
    for pool in pools:
        if short_name in pool.name:
            return pool
    return None


def _build_vlan(vi: VlanInterface, parsed: ParsedScript) -> SynthesizedVlan:
    binding = _find_binding(parsed.ip_addresses, vi.name)
    gateway: Optional[str] = None
    subnet: Optional[str] = None
    if binding:
        gateway = binding.address
        subnet = _subnet_from_address(binding.address, binding.prefix)
    else:
        logger.debug("No IP address bound to %s; gateway/subnet left empty", vi.name)

    pool = _find_pool(parsed.dhcp_pools, _vlan_short_name(vi.name))
    if pool is None:
        logger.debug("No DHCP pool matches %s", vi.name)

    return SynthesizedVlan(
        vlan_id=vi.vlan_id,
        name=vi.comment or vi.name,
        subnet=subnet,
        gateway=gateway,
        dhcp_range=pool.ranges if pool else None,
        dhcp_enabled=pool is not None,
        description=vi.comment,
    )


def build_router(parsed: ParsedScript) -> SynthesizedDevice:
    vlans: List[SynthesizedVlan] = []
    seen: set[int] = set()
    for vi in parsed.vlan_interfaces:
        if vi.vlan_id in seen:
            logger.debug("Duplicate VLAN interface for vlan-id %s (%s) ignored", vi.vlan_id, vi.name)
            continue
        seen.add(vi.vlan_id)
        vlans.append(_build_vlan(vi, parsed))

    ports: List[SynthesizedPort] = [
        SynthesizedPort(
            port_number=1,
            interface_name="ether1",
            label=WAN_LABEL,
            comment=WAN_LABEL,
        ),
        SynthesizedPort(
            port_number=2,
            interface_name="ether2",
            label=UPLINK_LABEL,
            comment=UPLINK_LABEL,
            vlan_mode="trunk",
            trunk_vlans=[v.vlan_id for v in vlans],
        ),
    ]
    ports.extend(default_port(n) for n in range(3, ROUTER_PORT_COUNT + 1))

    name = parsed.device_names[0] if parsed.device_names else DEFAULT_ROUTER_NAME
    return SynthesizedDevice(
        name=name,
        device_type="router",
        port_count=ROUTER_PORT_COUNT,
        ports=ports,
        vlans=vlans,
    )


def build_switch(parsed: ParsedScript, taken_names: List[str]) -> SynthesizedDevice:
    numbers = [n for n in (port_number(bp.interface) for bp in parsed.bridge_ports) if n is not None]
    port_count = max(numbers) if numbers else DEFAULT_SWITCH_PORT_COUNT
    if not numbers:
        logger.debug("Bridge ports found but none named etherN; assuming %s ports", port_count)

    ports_by_number: Dict[int, SynthesizedPort] = {}
    for bp in parsed.bridge_ports:
        number = port_number(bp.interface)
        if number is None:
            continue

        trunk_vlans: List[int] = []
        for vid, membership in parsed.bridge_vlans.items():
            if bp.interface in membership.tagged:
                trunk_vlans.append(vid)

        ports_by_number[number] = SynthesizedPort(
            port_number=number,
            interface_name=bp.interface,
            label=bp.comment or bp.interface,
            comment=bp.comment,
            vlan_mode="trunk" if trunk_vlans else "access",
            pvid=bp.pvid,
            trunk_vlans=trunk_vlans,
        )

    for n in range(1, port_count + 1):
        if n not in ports_by_number:
            ports_by_number[n] = default_port(n)

    name = next((n for n in parsed.device_names if n not in taken_names), None)
    if name is None:
        name = parsed.device_names[0] if parsed.device_names else DEFAULT_SWITCH_NAME

    return SynthesizedDevice(
        name=name,
        device_type="switch",
        port_count=port_count,
        ports=[ports_by_number[n] for n in sorted(ports_by_number)],
    )


def synthesize(parsed: ParsedScript) -> ParseResult:
    """
    Derive devices from the parser accumulators.

    - VLAN interfaces present => router
    - bridge ports present    => switch
    Both can hold for one script; the router is listed first.
    """
    devices: List[SynthesizedDevice] = []
    warnings: List[str] = []

    if parsed.is_router:
        devices.append(build_router(parsed))
    if parsed.is_switch:
        devices.append(build_switch(parsed, [d.name for d in devices]))

    if not devices:
        warnings.append(NO_SECTIONS_WARNING)

    for d in devices:
        logger.info(
            "Synthesized %s %r: %s ports, %s VLANs",
            d.device_type,
            d.name,
            d.port_count,
            len(d.vlans),
        )
    return ParseResult(devices=devices, warnings=warnings)


def require_script(script: Optional[str]) -> str:
    if script is None or not str(script).strip():
        raise InvalidScriptError("script is required")
    return script


def preview(script: Optional[str]) -> ParseResult:
    """Parse and synthesize without touching any store."""
    return synthesize(parse_script(require_script(script)))
