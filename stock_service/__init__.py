"""SimpleStock inventory service: products, stock movements and derived balances."""

__version__ = "0.1.0"
