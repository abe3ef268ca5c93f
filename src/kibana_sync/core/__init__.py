"""Kibana HTTP client shared by the export and import orchestrators."""

from .client import KibanaClient, is_error_envelope

__all__ = ["KibanaClient", "is_error_envelope"]
