"""tessera-cli: Command-line interface for tessera."""
