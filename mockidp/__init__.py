"""mockidp - a mock SAML Identity Provider with SCIM directory sync."""

__version__ = "0.1.0"
