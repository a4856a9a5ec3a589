class ListResponseMixin:
    """Wraps a service's ``list`` in the ``{items, count, limit, offset}`` shape."""

    def list_response(self, db, *args, limit: int, offset: int, **kwargs) -> dict:
        items = self.list(db, *args, limit=limit, offset=offset, **kwargs)
        return {"items": items, "count": len(items), "limit": limit, "offset": offset}
