"""External market-data collaborators."""
