import json
import logging
import time
from typing import Any, Dict, Optional

import requests
import urllib3
from requests.exceptions import ConnectionError, ReadTimeout

logger = logging.getLogger(__name__)

# Store field name -> REST field name
_FIELD_MAP = {
    "scenario_id": "scenarioId",
    "vlan_id": "vlanId",
    "dhcp_enabled": "dhcpEnabled",
    "dhcp_range": "dhcpRange",
    "port_count": "portCount",
    "is_managed": "isManaged",
    "ip_address": "ipAddress",
    "pos_x": "posX",
    "pos_y": "posY",
    "switch_id": "switchId",
    "port_number": "portNumber",
    "vlan_mode": "vlanMode",
    "trunk_vlans": "trunkVlans",
    "is_active": "isActive",
    "created_at": "createdAt",
}
_FIELD_MAP_REVERSE = {v: k for k, v in _FIELD_MAP.items()}


def _to_api(fields: Dict[str, Any]) -> Dict[str, Any]:
    return {_FIELD_MAP.get(k, k): v for k, v in fields.items()}


def _from_api(row: Dict[str, Any]) -> Dict[str, Any]:
    return {_FIELD_MAP_REVERSE.get(k, k): v for k, v in row.items()}


class TopologyApiClient:
    """Thin wrapper around the network inventory REST API, used as a TopologyStore."""

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: int = 30,
        verify_ssl: bool = True,
        max_retries: int = 3,
    ):
        self.base_url = base_url.rstrip("/")
        self.verify_ssl = verify_ssl
        self.default_timeout = timeout
        self.max_retries = max_retries
        self.session = requests.Session()
        self.session.headers.update(
            {
                "Content-Type": "application/json",
                "Accept": "application/json",
            }
        )
        if token:
            self.session.headers.update({"Authorization": f"Bearer {token}"})
        if not verify_ssl:
            # self-signed certs on small-office appliances
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)
        self.logger = logging.getLogger(__name__)

    def _request(
        self,
        method: str,
        endpoint: str,
        *,
        payload: Optional[dict] = None,
        params: Optional[dict] = None,
        allow_404: bool = False,
    ) -> Any:
        """Send a request with retry on timeouts and connection errors. Returns parsed JSON."""
        url = f"{self.base_url}{endpoint}"

        for attempt in range(self.max_retries):
            try:
                resp = self.session.request(
                    method,
                    url,
                    params=params,
                    json=payload,
                    verify=self.verify_ssl,
                    timeout=self.default_timeout + (attempt * 10),
                )
                if allow_404 and resp.status_code == 404:
                    return None
                resp.raise_for_status()
                return resp.json()

            except (ReadTimeout, ConnectionError) as exc:
                if attempt < self.max_retries - 1:
                    wait_time = 2 ** attempt
                    self.logger.warning(
                        "%s (attempt %s/%s), retrying in %ss... %s %s",
                        type(exc).__name__,
                        attempt + 1,
                        self.max_retries,
                        wait_time,
                        method,
                        endpoint,
                    )
                    time.sleep(wait_time)
                else:
                    self.logger.error("Failed after %s attempts for %s %s", self.max_retries, method, endpoint)
                    raise

    def get_scenario(self, scenario_id: int) -> Optional[Dict[str, Any]]:
        data = self._request("GET", f"/api/scenarios/{scenario_id}", allow_404=True)
        return _from_api(data) if data else None

    def create_scenario(self, name: str, description: Optional[str] = None) -> Dict[str, Any]:
        data = self._request("POST", "/api/scenarios", payload={"name": name, "description": description})
        self.logger.info("Created scenario %s (id=%s)", name, data.get("id"))
        return _from_api(data)

    def find_vlan(self, scenario_id: int, vlan_id: int) -> Optional[Dict[str, Any]]:
        """VLAN rows are unique per (scenario, vlanId); the server filters."""
        data = self._request("GET", f"/api/scenarios/{scenario_id}/vlans", params={"vlanId": vlan_id}) or []
        matches = [_from_api(v) for v in data if isinstance(v, dict)]
        if not matches:
            return None
        if len(matches) > 1:
            self.logger.warning(
                "Multiple VLAN rows found for scenario=%s vlan=%s; using the first.", scenario_id, vlan_id
            )
        return matches[0]

    def upsert_vlan(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        scenario_id = fields["scenario_id"]
        row_id = fields.get("id")
        payload = _to_api({k: v for k, v in fields.items() if k not in ("id", "scenario_id")})
        if row_id is None:
            data = self._request("POST", f"/api/scenarios/{scenario_id}/vlans", payload=payload)
        else:
            data = self._request("PUT", f"/api/scenarios/{scenario_id}/vlans/{row_id}", payload=payload)
        return _from_api(data)

    def create_switch(self, fields: Dict[str, Any]) -> int:
        """Create a switch row without default ports; ports follow via create_switch_port."""
        payload = _to_api(fields)
        payload["createPorts"] = False
        data = self._request("POST", "/api/switches", payload=payload)
        switch_id = data.get("id")
        if not isinstance(switch_id, int):
            raise RuntimeError(f"Switch create returned no integer id: {data!r}")
        return switch_id

    def create_switch_port(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        """Create exactly one port row on a switch."""
        switch_id = fields["switch_id"]
        trunk_vlans = fields.get("trunk_vlans") or "[]"
        if isinstance(trunk_vlans, str):
            trunk_vlans = json.loads(trunk_vlans)

        payload = {
            "portNumber": fields["port_number"],
            "label": fields.get("label"),
            "vlanMode": fields.get("vlan_mode"),
            "pvid": fields.get("pvid"),
            "trunkVlans": trunk_vlans,
        }
        data = self._request("POST", f"/api/switches/{switch_id}/ports", payload=payload)
        return _from_api(data)
