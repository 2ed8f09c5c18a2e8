"""NGS Vault utilities."""
