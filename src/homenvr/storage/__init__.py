"""On-disk segment storage: reconciliation, retention, disk usage."""
