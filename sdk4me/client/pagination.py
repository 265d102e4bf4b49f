"""Walks all pages of a 4me collection by following the Link header."""

from collections.abc import Callable, Iterator

from sdk4me.client.params import iter_params
from sdk4me.client.response import Response
from sdk4me.errors import PaginationError

MAX_PAGE_SIZE = 100


class PaginationWalker:
    """Retrieves pages with the maximum page size until there is no next page."""

    def __init__(self, get: Callable[..., Response]):
        self._get = get

    def iter_records(self, path: str, params=None, headers: dict | None = None) -> Iterator[dict]:
        """Yield the records one by one, fetching pages lazily.

        Raises PaginationError as soon as a page is invalid; records of
        earlier pages have already been yielded by then.
        """
        params = list(iter_params(params))
        if not any(str(key) == "per_page" for key, _ in params):
            params.insert(0, ("per_page", MAX_PAGE_SIZE))

        response = self._get(path, params, headers)
        while True:
            if not response.valid:
                raise PaginationError(response.message, response=response)

            if isinstance(response.json, list):
                records = response.json
            else:
                # 204 No Content parses as an empty object
                records = [response.json] if response.json else []
            yield from records

            next_path = response.pagination_relative_link("next")
            if not next_path:
                return
            response = self._get(next_path, None, headers)

    def each(
        self,
        path: str,
        params=None,
        headers: dict | None = None,
        visit: Callable[[dict], None] | None = None,
    ) -> int:
        """Call ``visit`` for every record and return the number of records."""
        count = 0
        for record in self.iter_records(path, params, headers):
            if visit is not None:
                visit(record)
            count += 1
        return count
