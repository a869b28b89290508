"""Document library operations proxied through a remote bridge's HTTP API."""
