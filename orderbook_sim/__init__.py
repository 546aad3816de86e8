"""
Orderbook Sim - multi-venue order book viewer with order impact simulation.

Architecture:
- datafeed/: venue REST/WebSocket adapters, level normalization, book store
- engine/: depth/imbalance analytics, order impact simulation, orchestration
- ui/: ladder + depth + simulation result display (Textual TUI)
"""

__version__ = "0.1.0"
