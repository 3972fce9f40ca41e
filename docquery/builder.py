"""
### Query Builder

QueryBuilder turns the query string of an API request into a query, and runs it.

```python
from docquery import QueryBuilder, parse_query_string

params = parse_query_string('search=phone&price[gte]=500&sort=-price,name&page=2&limit=20')

result = await QueryBuilder(products.find(), params) \\
    .search(['name', 'description']) \\
    .filter() \\
    .sort() \\
    .paginate() \\
    .populate('category') \\
    .execute_with_metadata()
#-> {'meta': {'total': 45, 'page': 2, 'limit': 20, 'totalPages': 3}, 'data': [...]}
```

Every method but the last two returns the builder itself, so calls can be chained.
The order of the calls is the order in which the refinements are applied.

Call `aggregate(pipeline)` first to switch the builder into the aggregation mode:
the same methods will then append stages to the pipeline:

```python
await QueryBuilder(products.find(), params) \\
    .aggregate([{'$match': {'in_stock': True}}]) \\
    .filter() \\
    .sort() \\
    .paginate() \\
    .exec()
```
"""

import logging
import math
from time import perf_counter

from . import params
from .modes import SimpleMode, AggregationMode

logger = logging.getLogger(__name__)


class QueryBuilder:
    """ Builds a query from request parameters """

    #: The page size used for metadata when paginate() was never called
    DEFAULT_LIMIT = 10

    def __init__(self, handle, raw_params):
        """ Init a builder

        :param handle: A query to refine; it's never executed until exec()
        :type handle: docquery.query.DocumentQuery
        :param raw_params: Request parameters. See: parse_query_string()
        :type raw_params: dict
        """
        self.handle = handle
        self.params = raw_params

        #: The current mode: SimpleMode or AggregationMode
        self.mode = SimpleMode(handle)

        # The default page size given to paginate(); used for metadata
        self._default_limit = self.DEFAULT_LIMIT

    def __repr__(self):
        return 'QueryBuilder({!r})'.format(self.mode)

    @property
    def is_aggregation(self) -> bool:
        """ Is the builder in the aggregation mode? """
        return isinstance(self.mode, AggregationMode)

    @property
    def query(self):
        """ The current query

        :rtype: docquery.query.DocumentQuery | None
        """
        return self.mode.handle if not self.is_aggregation else None

    @property
    def pipeline(self):
        """ The current aggregation pipeline

        :rtype: list | None
        """
        return self.mode.stages if self.is_aggregation else None

    # region Refinements

    def search(self, fields=()) -> 'QueryBuilder':
        """ Case-insensitive substring search of the `search` parameter over `fields`

        The fields are OR-ed: a document matches when any of them contains the text.
        """
        value = self.params.get('search')
        if value:
            conditions = params.search_conditions(fields, value)
            if conditions:
                self.mode.apply_predicate({'$or': conditions})
        return self

    def filter(self) -> 'QueryBuilder':
        """ Filter by every parameter that's not reserved """
        self.mode.apply_predicate(params.build_predicate(self.params))
        return self

    def sort(self, default_sort: str = '-createdAt') -> 'QueryBuilder':
        """ Sort by the `sort` parameter, or by `default_sort` """
        tokens = params.sort_tokens(self.params, default_sort)
        if tokens:
            self.mode.apply_sort(params.sort_mapping(tokens), tokens)
        return self

    def paginate(self, default_limit: int = 10) -> 'QueryBuilder':
        """ Slice by the `page` and `limit` parameters """
        self._default_limit = default_limit
        page, limit, skip = params.resolve_pagination(self.params, default_limit)
        self.mode.apply_pagination(skip, limit)
        return self

    def populate(self, specifiers=None) -> 'QueryBuilder':
        """ Populate relations

        :param specifiers: A relation name, a {path, select, match, populate} object, or a list of those
        """
        if not specifiers:
            return self

        if not isinstance(specifiers, (list, tuple)):
            specifiers = [specifiers]
        for specifier in specifiers:
            if isinstance(specifier, str) or (isinstance(specifier, dict) and specifier.get('path')):
                self.mode.apply_join(specifier)
        return self

    def aggregate(self, pipeline) -> 'QueryBuilder':
        """ Switch to the aggregation mode, starting with the given pipeline

        The list is copied. Calling it again replaces the pipeline.
        """
        self.mode = AggregationMode(self.handle.collection, pipeline)
        return self

    # endregion

    # region Execution

    async def exec(self) -> list:
        """ Run the query

        :return: Model instances in the simple mode; dicts in the aggregation mode
        """
        start = perf_counter()
        result = await self.mode.execute()
        self._log_execution_time(start)
        return result

    async def execute_with_metadata(self) -> dict:
        """ Run the query, and count the total

        :return: {'meta': {total, page, limit, totalPages}, 'data': [...]}
        """
        start = perf_counter()
        total = await self.mode.count()
        data = await self.mode.execute()

        # Pages of zero size can't be counted
        default_limit = self._default_limit if self._default_limit > 0 else self.DEFAULT_LIMIT
        page, limit, skip = params.resolve_pagination(self.params, default_limit)
        self._log_execution_time(start)
        return {
            'meta': {
                'total': total,
                'page': page,
                'limit': limit,
                'totalPages': math.ceil(total / limit),
            },
            'data': data,
        }

    # endregion

    def _log_execution_time(self, start):
        logger.debug('Query executed in %.2f ms', (perf_counter() - start) * 1e3)
