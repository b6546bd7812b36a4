"""LoRaWAN alarm and automation rule evaluation engine."""

__version__ = "0.1.0"
