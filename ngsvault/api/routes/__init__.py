"""NGS Vault API routes."""
