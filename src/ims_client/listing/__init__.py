"""Paginated list views."""
