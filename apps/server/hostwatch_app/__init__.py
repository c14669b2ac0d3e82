"""hostwatch server application: HTTP routes, channel endpoint, and CLI."""
