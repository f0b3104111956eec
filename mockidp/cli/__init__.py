"""Command line interface for mockidp."""
