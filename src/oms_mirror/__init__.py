"""Local mirror of the order-management master data (item catalog, stock, branding images)."""

__version__ = "0.1.0"
