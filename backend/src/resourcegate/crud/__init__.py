"""Generic CRUD actions."""

from resourcegate.crud.query import ListParams, clamp_per_page
from resourcegate.crud.service import ListResult, ResourceService

__all__ = ["ListParams", "ListResult", "ResourceService", "clamp_per_page"]
