"""Run persistence: local JSON files with an optional remote run service."""
