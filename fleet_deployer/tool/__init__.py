"""Command line tool for fleet-deployer."""
