"""Bot services for talking to the LUNA API."""
