import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol

logger = logging.getLogger(__name__)

_TABLES = ("scenarios", "vlans", "switches", "switch_ports")


class TopologyStore(Protocol):
    """Persistence operations the importer depends on. Rows are plain dicts."""

    def get_scenario(self, scenario_id: int) -> Optional[Dict[str, Any]]: ...

    def create_scenario(self, name: str, description: Optional[str] = None) -> Dict[str, Any]: ...

    def find_vlan(self, scenario_id: int, vlan_id: int) -> Optional[Dict[str, Any]]: ...

    def upsert_vlan(self, fields: Dict[str, Any]) -> Dict[str, Any]: ...

    def create_switch(self, fields: Dict[str, Any]) -> int: ...

    def create_switch_port(self, fields: Dict[str, Any]) -> Dict[str, Any]: ...


def _now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class JsonTopologyStore:
    """
    Topology rows kept in a single JSON snapshot file.

    File layout: <data_dir>/topology.json
        {"scenarios": [...], "vlans": [...], "switches": [...], "switch_ports": [...]}

    Every write is flushed to disk before returning. Rows are never deleted.
    """

    def __init__(self, data_dir: Path, file_name: str = "topology.json"):
        self.data_dir = Path(data_dir)
        self.file_path = self.data_dir / file_name
        self._data = self._load()

    def _load(self) -> Dict[str, List[dict]]:
        data: Dict[str, List[dict]] = {t: [] for t in _TABLES}
        if not self.file_path.exists():
            logger.info("No topology snapshot at %s; starting empty", self.file_path)
            return data

        logger.info("Loading topology snapshot from %s", self.file_path)
        with open(self.file_path, "r", encoding="utf-8") as fh:
            try:
                raw = json.load(fh)
            except json.JSONDecodeError as exc:
                raise RuntimeError(f"Topology snapshot {self.file_path} is not valid JSON: {exc}") from exc

        if not isinstance(raw, dict):
            raise RuntimeError(f"Topology snapshot {self.file_path} must be a JSON object")
        for table in _TABLES:
            rows = raw.get(table) or []
            if not isinstance(rows, list):
                raise RuntimeError(f"Topology snapshot table {table!r} must be a list")
            data[table] = rows
        return data

    def _save(self) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)
        tmp_path = self.file_path.with_suffix(".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(self._data, f, indent=2, sort_keys=True)
        tmp_path.replace(self.file_path)

    def _next_id(self, table: str) -> int:
        return max((row["id"] for row in self._data[table]), default=0) + 1

    def _insert(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        row = dict(row)
        row["id"] = self._next_id(table)
        self._data[table].append(row)
        self._save()
        return dict(row)

    def rows(self, table: str) -> List[Dict[str, Any]]:
        """Copy of all rows of a table (read-only view for callers and tests)."""
        return [dict(r) for r in self._data[table]]

    def get_scenario(self, scenario_id: int) -> Optional[Dict[str, Any]]:
        for row in self._data["scenarios"]:
            if row["id"] == scenario_id:
                return dict(row)
        return None

    def create_scenario(self, name: str, description: Optional[str] = None) -> Dict[str, Any]:
        row = self._insert(
            "scenarios",
            {"name": name, "description": description, "is_active": False, "created_at": _now()},
        )
        logger.info("Created scenario %s (id=%s)", name, row["id"])
        return row

    def find_vlan(self, scenario_id: int, vlan_id: int) -> Optional[Dict[str, Any]]:
        for row in self._data["vlans"]:
            if row.get("scenario_id") == scenario_id and row.get("vlan_id") == vlan_id:
                return dict(row)
        return None

    def upsert_vlan(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        """Update the row whose id is fields["id"], or insert a new row when no id is given."""
        row_id = fields.get("id")
        if row_id is None:
            return self._insert("vlans", fields)

        for row in self._data["vlans"]:
            if row["id"] == row_id:
                row.update({k: v for k, v in fields.items() if k != "id"})
                self._save()
                return dict(row)
        raise RuntimeError(f"VLAN row not found for update: id={row_id}")

    def create_switch(self, fields: Dict[str, Any]) -> int:
        row = self._insert("switches", {**fields, "created_at": _now()})
        return row["id"]

    def create_switch_port(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        switch_id = fields.get("switch_id")
        if not any(sw["id"] == switch_id for sw in self._data["switches"]):
            raise RuntimeError(f"Cannot add port to unknown switch id={switch_id}")
        return self._insert("switch_ports", fields)
