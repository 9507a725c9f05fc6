"""
Stock Kernel - inventory ledger and replenishment engine.

An append-only stock-movement ledger with:
- Derived per-product inventory snapshots
- Daily demand normalization from sale movements
- EOQ / reorder-point optimization
- Threshold-driven alert lifecycle
- Purchase order generation and receiving
"""

__version__ = "0.1.0"
