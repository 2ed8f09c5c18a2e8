"""
NGS Vault Ingestion

Turns run folders and run archives into parsed runs ready to be stored.
"""
