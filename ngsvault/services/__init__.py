"""NGS Vault services."""
