"""Test package for Credential_Index; ``src`` is put on the path by pytest config."""
