"""Command line tools for operating tolerance checks."""
