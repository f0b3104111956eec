"""Web interface for mockidp."""
