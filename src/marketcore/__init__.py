"""marketcore - order lifecycle and inventory-consistency core for a marketplace backend."""

__version__ = "0.1.0"
