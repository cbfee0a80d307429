"""Application registry identity and integrity verification."""
