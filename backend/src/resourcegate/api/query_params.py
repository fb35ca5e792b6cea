"""Query string -> ListParams."""

import re

from starlette.datastructures import QueryParams

from resourcegate.crud.query import ListParams

_FILTER_KEY = re.compile(r"^filter\[([^\]]+)\]$")


def list_params(query: QueryParams) -> ListParams:
    """Read ``filter[x]``, ``sort``, ``search``, ``include``, ``per_page`` and ``page``.

    A repeated filter key keeps its last value.
    """
    filters: dict[str, str] = {}
    for key, value in query.multi_items():
        match = _FILTER_KEY.match(key)
        if match:
            filters[match.group(1)] = value
    return ListParams(
        filters=filters,
        sort=query.get("sort"),
        search=query.get("search"),
        include=query.get("include"),
        per_page=query.get("per_page"),
        page=query.get("page"),
    )
