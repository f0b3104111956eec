"""Core functionality for mockidp."""
