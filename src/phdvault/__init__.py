"""PHD Vault record-sharing service."""
