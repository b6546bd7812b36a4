"""LoRaWatch Services Module."""
