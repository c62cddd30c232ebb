"""LUNA relay: Discord bridge to the LUNA workflow API."""
