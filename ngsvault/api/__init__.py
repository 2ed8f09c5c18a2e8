"""NGS Vault HTTP API."""
