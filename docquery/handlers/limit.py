"""
### Slice

`skip` and `limit` select a window of rows: `OFFSET .. LIMIT ..`.
Pagination is made of them: page N of size L is `skip=(N-1)*L, limit=L`.

Both take a number or `None`. Zero and negative numbers mean "no skip" and "no limit".
"""

from .base import DocQueryHandlerBase
from ..exc import InvalidQueryError


class DocLimit(DocQueryHandlerBase):
    """ skip & limit

        A collection may have `max_items`: then, there's always a limit, and it's never higher than that.
    """

    query_section_name = 'limit'

    def __init__(self, model, bags=None, max_items=None):
        """

        :param max_items: Upper bound for the limit, applied to every query
        """
        super(DocLimit, self).__init__(model, bags)

        if max_items is not None and max_items <= 0:
            raise ValueError('max_items must be positive, got {!r}'.format(max_items))
        self.max_items = max_items

        self.skip = None
        self.limit = None

    def _get_supported_bags(self):
        # Slicing has nothing to do with columns
        return None

    def input(self, skip=None, limit=None):
        super(DocLimit, self).input((skip, limit))
        self.skip = self.clamp(skip, 'skip')
        self.limit = self.clamp(limit, 'limit')

        if self.max_items:
            self.limit = self.max_items if self.limit is None else min(self.limit, self.max_items)
        return self

    @staticmethod
    def clamp(value, name='limit'):
        """ Check a skip/limit value; None when it has no effect """
        if value is None:
            return None
        # bool is an int, but not a number anyone meant
        if isinstance(value, bool) or not isinstance(value, int):
            raise InvalidQueryError('{} must be an integer or null, got {!r}'.format(name, value))
        return value if value > 0 else None

    def alter_query(self, stmt):
        if self.skip:
            stmt = stmt.offset(self.skip)
        if self.limit:
            stmt = stmt.limit(self.limit)
        return stmt
