import re
from typing import Any, Dict, List, Optional

import pytest
from requests.exceptions import ConnectionError, HTTPError

from rsc_topology import topology_client
from rsc_topology.importer import import_script
from rsc_topology.topology_client import TopologyApiClient


class FakeResponse:
    def __init__(self, status_code: int = 200, payload: Any = None):
        self.status_code = status_code
        self._payload = payload

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise HTTPError(f"{self.status_code} error")

    def json(self) -> Any:
        return self._payload


class FakeSession:
    """Records requests and replays queued responses (or raises queued exceptions)."""

    def __init__(self, responses: List[Any]):
        self.responses = list(responses)
        self.requests: List[dict] = []
        self.headers: dict = {}

    def request(self, method, url, params=None, json: Optional[dict] = None, verify=True, timeout=None):
        self.requests.append({"method": method, "url": url, "params": params, "json": json, "timeout": timeout})
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


class FakeInventoryApi:
    """
    In-memory inventory server behind the session interface.

    VLANs are unique per (scenarioId, vlanId); a duplicate POST gets 409.
    Port rows are only created by POST /api/switches/{id}/ports, one per call.
    """

    def __init__(self) -> None:
        self.headers: dict = {}
        self.scenarios: List[Dict[str, Any]] = []
        self.vlans: List[Dict[str, Any]] = []
        self.switches: List[Dict[str, Any]] = []
        self.ports: List[Dict[str, Any]] = []

    def request(self, method, url, params=None, json: Optional[dict] = None, verify=True, timeout=None):
        path = re.sub(r"^https?://[^/]+", "", url)
        body = dict(json or {})

        if method == "GET" and (m := re.fullmatch(r"/api/scenarios/(\d+)", path)):
            row = next((s for s in self.scenarios if s["id"] == int(m.group(1))), None)
            return FakeResponse(200, row) if row else FakeResponse(404, {"error": "Scenario not found"})

        if method == "POST" and path == "/api/scenarios":
            row = {"id": len(self.scenarios) + 1, "name": body["name"], "description": body.get("description")}
            self.scenarios.append(row)
            return FakeResponse(201, row)

        if m := re.fullmatch(r"/api/scenarios/(\d+)/vlans", path):
            scenario_id = int(m.group(1))
            if method == "GET":
                rows = [
                    v
                    for v in self.vlans
                    if v["scenarioId"] == scenario_id and v["vlanId"] == int((params or {})["vlanId"])
                ]
                return FakeResponse(200, rows)
            if any(v["scenarioId"] == scenario_id and v["vlanId"] == body["vlanId"] for v in self.vlans):
                return FakeResponse(409, {"error": "VLAN exists"})
            row = {**body, "id": len(self.vlans) + 1, "scenarioId": scenario_id}
            self.vlans.append(row)
            return FakeResponse(201, row)

        if method == "PUT" and (m := re.fullmatch(r"/api/scenarios/(\d+)/vlans/(\d+)", path)):
            for v in self.vlans:
                if v["id"] == int(m.group(2)) and v["scenarioId"] == int(m.group(1)):
                    v.update(body)
                    return FakeResponse(200, v)
            return FakeResponse(404, {"error": "VLAN not found"})

        if method == "POST" and path == "/api/switches":
            row = {**body, "id": len(self.switches) + 1}
            self.switches.append(row)
            return FakeResponse(201, row)

        if method == "POST" and (m := re.fullmatch(r"/api/switches/(\d+)/ports", path)):
            switch_id = int(m.group(1))
            if any(p["switchId"] == switch_id and p["portNumber"] == body["portNumber"] for p in self.ports):
                return FakeResponse(409, {"error": "Port exists"})
            row = {**body, "id": len(self.ports) + 1, "switchId": switch_id}
            self.ports.append(row)
            return FakeResponse(201, row)

        return FakeResponse(404, {"error": f"no route {method} {path}"})


@pytest.fixture
def client():
    return TopologyApiClient("http://inventory.local:3001/", token="secret", timeout=5)


def _use(client, responses):
    client.session = FakeSession(responses)
    return client.session


def test_auth_header_and_base_url():
    c = TopologyApiClient("http://inventory.local:3001/", token="secret")
    assert c.base_url == "http://inventory.local:3001"
    assert c.session.headers["Authorization"] == "Bearer secret"


def test_get_scenario_found_and_missing(client):
    session = _use(client, [FakeResponse(200, {"id": 3, "name": "Home", "isActive": False}), FakeResponse(404)])
    assert client.get_scenario(3) == {"id": 3, "name": "Home", "is_active": False}
    assert client.get_scenario(4) is None
    assert session.requests[0]["url"] == "http://inventory.local:3001/api/scenarios/3"


def test_find_vlan_is_filtered_by_server(client):
    session = _use(client, [FakeResponse(200, [{"id": 2, "scenarioId": 2, "vlanId": 20}]), FakeResponse(200, [])])
    assert client.find_vlan(2, 20)["id"] == 2
    assert client.find_vlan(2, 30) is None
    assert session.requests[0]["url"].endswith("/api/scenarios/2/vlans")
    assert session.requests[0]["params"] == {"vlanId": 20}


def test_upsert_vlan_posts_or_puts_under_scenario(client):
    session = _use(client, [FakeResponse(201, {"id": 7}), FakeResponse(200, {"id": 7, "dhcpEnabled": True})])
    client.upsert_vlan({"scenario_id": 1, "vlan_id": 20, "dhcp_enabled": False})
    updated = client.upsert_vlan({"id": 7, "scenario_id": 1, "vlan_id": 20, "dhcp_enabled": True})

    assert session.requests[0]["method"] == "POST"
    assert session.requests[0]["url"].endswith("/api/scenarios/1/vlans")
    assert session.requests[0]["json"] == {"vlanId": 20, "dhcpEnabled": False}
    assert session.requests[1]["method"] == "PUT"
    assert session.requests[1]["url"].endswith("/api/scenarios/1/vlans/7")
    assert "id" not in session.requests[1]["json"]
    assert updated["dhcp_enabled"] is True


def test_create_switch_returns_id_without_default_ports(client):
    session = _use(client, [FakeResponse(201, {"id": 11, "name": "sw"})])
    assert client.create_switch({"name": "sw", "port_count": 8, "pos_x": 0}) == 11
    assert session.requests[0]["json"] == {"name": "sw", "portCount": 8, "posX": 0, "createPorts": False}


def test_create_switch_without_id_raises(client):
    _use(client, [FakeResponse(201, {"name": "sw"})])
    with pytest.raises(RuntimeError):
        client.create_switch({"name": "sw"})


def test_create_switch_port_posts_single_row(client):
    session = _use(client, [FakeResponse(201, {"id": 1, "portNumber": 2})])
    client.create_switch_port(
        {"switch_id": 11, "port_number": 2, "label": "Uplink", "vlan_mode": "trunk", "pvid": 1, "trunk_vlans": "[20, 30]"}
    )
    req = session.requests[0]
    assert req["method"] == "POST"
    assert req["url"].endswith("/api/switches/11/ports")
    assert req["json"] == {"portNumber": 2, "label": "Uplink", "vlanMode": "trunk", "pvid": 1, "trunkVlans": [20, 30]}


def test_import_twice_through_api_updates_vlans_in_place(client, router_script, switch_script):
    api = FakeInventoryApi()
    client.session = api

    first = import_script(client, router_script + switch_script)
    second = import_script(client, router_script + switch_script, scenario_id=first.scenario_id)

    assert second.created_vlans == 0
    assert second.updated_vlans == 2
    assert sorted(v["vlanId"] for v in api.vlans) == [20, 30]
    assert len(api.switches) == 4
    assert len(api.scenarios) == 1


def test_import_through_api_keeps_each_port_config(client, router_script):
    api = FakeInventoryApi()
    client.session = api

    import_script(client, router_script)

    router_ports = sorted((p for p in api.ports if p["switchId"] == 1), key=lambda p: p["portNumber"])
    assert [p["portNumber"] for p in router_ports] == [1, 2, 3, 4, 5]
    assert router_ports[0]["label"] == "WAN"
    assert router_ports[1]["vlanMode"] == "trunk"
    assert router_ports[1]["trunkVlans"] == [20, 30]
    assert router_ports[4]["vlanMode"] == "access"


def test_vlans_in_other_scenario_not_matched(client, router_script):
    api = FakeInventoryApi()
    client.session = api

    a = import_script(client, router_script, scenario_name="A")
    b = import_script(client, router_script, scenario_name="B")
    assert a.scenario_id != b.scenario_id
    assert b.created_vlans == 2
    assert len(api.vlans) == 4


def test_retries_connection_errors_then_succeeds(client, monkeypatch):
    sleeps = []
    monkeypatch.setattr(topology_client.time, "sleep", sleeps.append)
    session = _use(client, [ConnectionError("down"), FakeResponse(200, {"id": 1})])

    assert client.get_scenario(1) == {"id": 1}
    assert sleeps == [1]
    assert [r["timeout"] for r in session.requests] == [5, 15]


def test_gives_up_after_max_retries(client, monkeypatch):
    monkeypatch.setattr(topology_client.time, "sleep", lambda _s: None)
    _use(client, [ConnectionError("down")] * 3)
    with pytest.raises(ConnectionError):
        client.get_scenario(1)


def test_http_errors_are_not_retried(client):
    session = _use(client, [FakeResponse(500)])
    with pytest.raises(HTTPError):
        client.create_scenario("x")
    assert len(session.requests) == 1
