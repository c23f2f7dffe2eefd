from typing import Any, Dict, List, Optional

import pytest

ROUTER_SCRIPT = """\
# jan/02/2025 10:00:00 by RouterOS 7.16
# model = RB760iGS
/interface vlan
add comment="Trusted LAN" interface=bridge name=vlan20-trusted vlan-id=20
add interface=bridge name=vlan30-guest vlan-id=30
/ip pool
add name=pool-trusted ranges=10.20.0.100-10.20.0.200
add name=pool-guest ranges=10.30.0.100-10.30.0.200
/ip address
add address=10.20.0.1/24 interface=vlan20-trusted network=10.20.0.0
add address=10.30.0.1/24 interface=vlan30-guest network=10.30.0.0
/system identity
set name=hex-router
"""

SWITCH_SCRIPT = """\
/interface bridge port
add bridge=bridge interface=ether1 comment=Uplink
add bridge=bridge interface=ether2 pvid=20
add bridge=bridge interface=ether4 pvid=30 comment="Guest AP"
add bridge=bridge interface=wlan1 pvid=30
/interface bridge vlan
add bridge=bridge tagged=bridge,ether1 untagged=ether2 vlan-ids=20
add bridge=bridge tagged=bridge,ether1 untagged=ether4 vlan-ids=30
/system identity set name=css-switch
"""


class FakeStore:
    """In-memory TopologyStore with optional failure injection."""

    def __init__(self) -> None:
        self.scenarios: List[Dict[str, Any]] = []
        self.vlans: List[Dict[str, Any]] = []
        self.switches: List[Dict[str, Any]] = []
        self.ports: List[Dict[str, Any]] = []
        self.calls: List[str] = []
        self.fail_on: Optional[str] = None

    def _check(self, op: str) -> None:
        self.calls.append(op)
        if self.fail_on == op:
            raise RuntimeError(f"{op} exploded")

    def get_scenario(self, scenario_id):
        self._check("get_scenario")
        return next((dict(s) for s in self.scenarios if s["id"] == scenario_id), None)

    def create_scenario(self, name, description=None):
        self._check("create_scenario")
        row = {"id": len(self.scenarios) + 1, "name": name, "description": description}
        self.scenarios.append(row)
        return dict(row)

    def find_vlan(self, scenario_id, vlan_id):
        self._check("find_vlan")
        for v in self.vlans:
            if v["scenario_id"] == scenario_id and v["vlan_id"] == vlan_id:
                return dict(v)
        return None

    def upsert_vlan(self, fields):
        self._check("upsert_vlan")
        if fields.get("id") is None:
            row = dict(fields, id=len(self.vlans) + 1)
            self.vlans.append(row)
            return dict(row)
        for v in self.vlans:
            if v["id"] == fields["id"]:
                v.update(fields)
                return dict(v)
        raise RuntimeError("no such vlan")

    def create_switch(self, fields):
        self._check("create_switch")
        row = dict(fields, id=len(self.switches) + 1)
        self.switches.append(row)
        return row["id"]

    def create_switch_port(self, fields):
        self._check("create_switch_port")
        row = dict(fields, id=len(self.ports) + 1)
        self.ports.append(row)
        return dict(row)


@pytest.fixture
def router_script() -> str:
    return ROUTER_SCRIPT


@pytest.fixture
def switch_script() -> str:
    return SWITCH_SCRIPT


@pytest.fixture
def fake_store() -> FakeStore:
    return FakeStore()
