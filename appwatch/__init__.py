"""appwatch — application registry with inventory-aware health polling."""

__version__ = "0.1.0"
