"""
Line-oriented parser for Mikrotik RouterOS export scripts (.rsc).

The parser is a single pass over the script:
- each line is classified as a section marker, a command, or noise
- the current section path is carried from line to line
- every (section, attributes) pair is routed into one of a fixed set of
  accumulators on ParsedScript

Nothing here raises on a malformed line; lines that match no known section
or lack the attributes a section needs are dropped.
"""
import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, NamedTuple, Optional

logger = logging.getLogger(__name__)

SECTION_IDENTITY = "/system identity"
SECTION_VLAN_INTERFACE = "/interface vlan"
SECTION_IP_ADDRESS = "/ip address"
SECTION_IP_POOL = "/ip pool"
SECTION_BRIDGE_PORT = "/interface bridge port"
SECTION_BRIDGE_VLAN = "/interface bridge vlan"

DEFAULT_PREFIX = 24
DEFAULT_PVID = 1

_KV_RE = re.compile(r'([\w-]+)=(?:"([^"]*)"|(\S*))')
_INLINE_RE = re.compile(r"^(/[\w\s/-]+?)\s+(add|set)\s+(.+)$")
_COMMAND_RE = re.compile(r"^(add|set)\s+(.*)$")


class ClassifiedLine(NamedTuple):
    kind: str  # "section" | "command"
    section: Optional[str]  # set for section markers
    payload: Optional[str]  # set for commands and inline section commands


@dataclass
class VlanInterface:
    vlan_id: int
    name: str
    comment: Optional[str] = None


@dataclass
class IpAddressBinding:
    address: str
    prefix: int
    interface: str


@dataclass
class DhcpPool:
    name: str
    ranges: str


@dataclass
class BridgePort:
    interface: str
    pvid: int = DEFAULT_PVID
    comment: Optional[str] = None


@dataclass
class BridgeVlanMembership:
    """Tagged/untagged members of one VLAN id, merged across all declarations."""

    tagged: List[str] = field(default_factory=list)
    untagged: List[str] = field(default_factory=list)


@dataclass
class ParsedScript:
    device_names: List[str] = field(default_factory=list)
    vlan_interfaces: List[VlanInterface] = field(default_factory=list)
    ip_addresses: List[IpAddressBinding] = field(default_factory=list)
    dhcp_pools: List[DhcpPool] = field(default_factory=list)
    bridge_ports: List[BridgePort] = field(default_factory=list)
    bridge_vlans: Dict[int, BridgeVlanMembership] = field(default_factory=dict)

    @property
    def is_router(self) -> bool:
        return bool(self.vlan_interfaces)

    @property
    def is_switch(self) -> bool:
        return bool(self.bridge_ports)


def parse_kv(payload: str) -> Dict[str, str]:
    """
    Extract key=value attributes from a command payload.

    Values are either "double quoted" (quotes stripped, no escape handling)
    or a run of non-whitespace. Keys are lower-cased; a repeated key keeps
    the last value.
    """
    result: Dict[str, str] = {}
    for m in _KV_RE.finditer(payload or ""):
        value = m.group(2) if m.group(2) is not None else m.group(3)
        result[m.group(1).lower()] = value
    return result


def classify_line(line: str) -> Optional[ClassifiedLine]:
    """Classify one line. Returns None for blank lines, comments and noise."""
    line = (line or "").strip()
    if not line or line.startswith("#"):
        return None

    if line.startswith("/"):
        m = _INLINE_RE.match(line)
        if m:
            # e.g. /system identity set name="core"
            return ClassifiedLine("section", m.group(1).strip(), m.group(3))
        return ClassifiedLine("section", line, None)

    m = _COMMAND_RE.match(line)
    if m:
        return ClassifiedLine("command", None, m.group(2))
    return None


def _parse_int(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value.strip())
    except ValueError:
        return None


def _split_members(raw: Optional[str]) -> List[str]:
    if not raw:
        return []
    return [s.strip() for s in raw.split(",") if s.strip()]


class RscScriptParser:
    """Carries the current section and feeds commands into a ParsedScript."""

    def __init__(self) -> None:
        self.section = ""
        self.result = ParsedScript()

    def feed(self, line: str) -> None:
        classified = classify_line(line)
        if classified is None:
            return

        if classified.kind == "section":
            self.section = classified.section or ""
            if classified.payload is not None:
                self.process_command(self.section, classified.payload)
            return

        self.process_command(self.section, classified.payload or "")

    def process_command(self, section: str, payload: str) -> None:
        kv = parse_kv(payload)
        acc = self.result

        if SECTION_IDENTITY in section:
            name = kv.get("name")
            if name:
                acc.device_names.append(name)

        elif SECTION_VLAN_INTERFACE in section:
            vlan_id = _parse_int(kv.get("vlan-id"))
            if vlan_id is None:
                logger.debug("Skipping VLAN interface without usable vlan-id: %r", payload)
                return
            acc.vlan_interfaces.append(
                VlanInterface(
                    vlan_id=vlan_id,
                    name=kv.get("name") or f"vlan{vlan_id}",
                    comment=kv.get("comment"),
                )
            )

        elif SECTION_IP_ADDRESS in section:
            address = kv.get("address")
            interface = kv.get("interface")
            if not address or not interface:
                return
            addr, _, prefix_raw = address.partition("/")
            prefix = _parse_int(prefix_raw) if prefix_raw else None
            if prefix is None:
                prefix = DEFAULT_PREFIX
            acc.ip_addresses.append(IpAddressBinding(address=addr, prefix=prefix, interface=interface))

        elif SECTION_IP_POOL in section:
            name = kv.get("name")
            ranges = kv.get("ranges")
            if name and ranges:
                acc.dhcp_pools.append(DhcpPool(name=name, ranges=ranges))

        elif SECTION_BRIDGE_PORT in section:
            interface = kv.get("interface")
            if not interface or not interface.startswith("ether"):
                return
            pvid = _parse_int(kv.get("pvid"))
            if pvid is None:
                pvid = DEFAULT_PVID
            acc.bridge_ports.append(BridgePort(interface=interface, pvid=pvid, comment=kv.get("comment")))

        elif SECTION_BRIDGE_VLAN in section:
            raw_ids = kv.get("vlan-ids")
            if not raw_ids:
                return
            vlan_ids = [v for v in (_parse_int(s) for s in raw_ids.split(",")) if v is not None and v > 0]
            tagged = _split_members(kv.get("tagged"))
            untagged = _split_members(kv.get("untagged"))
            for vid in vlan_ids:
                membership = acc.bridge_vlans.setdefault(vid, BridgeVlanMembership())
                membership.tagged.extend(tagged)
                membership.untagged.extend(untagged)


def parse_script(script: str) -> ParsedScript:
    """Run the whole script through a fresh parser and return the accumulators."""
    parser = RscScriptParser()
    for line in (script or "").replace("\r\n", "\n").split("\n"):
        parser.feed(line)

    acc = parser.result
    logger.debug(
        "Parsed script: names=%s vlan_interfaces=%s ip_addresses=%s pools=%s bridge_ports=%s bridge_vlans=%s",
        len(acc.device_names),
        len(acc.vlan_interfaces),
        len(acc.ip_addresses),
        len(acc.dhcp_pools),
        len(acc.bridge_ports),
        len(acc.bridge_vlans),
    )
    return acc
