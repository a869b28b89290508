"""Microsoft Graph access: certificate material, service tokens and drive operations."""
