"""Application-level wiring: configuration and the HTTP trigger API."""
