"""Settings, error taxonomy and logging setup shared by the service."""
