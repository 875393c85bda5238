"""Client-side data layer for the inventory management system."""

__version__ = "0.1.0"
