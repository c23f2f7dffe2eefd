"""
Mikrotik RSC import for the network topology inventory.

This package provides:
- RSC script parser (line classification, sections, key=value attributes)
- Topology synthesis (router/switch devices, ports, VLANs)
- Import of a synthesized topology into a scenario (VLAN upsert, switch/port creation)
- Local JSON storage and a REST client for the inventory backend
"""
