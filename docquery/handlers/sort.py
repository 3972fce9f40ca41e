"""
### Sort

The sort becomes the `ORDER BY` clause. Three forms are accepted:

```python
query.sort('-price name')           # fields separated by whitespace; `-` means descending
query.sort(['-price', 'name'])      # a list of such fields
query.sort({'price': -1, 'name': 1})  # MongoDB's own form
```

All of them mean `ORDER BY price DESC, name ASC`.
Fields are columns, or `_id`.
"""

from collections import OrderedDict
from collections.abc import Mapping

from .base import DocQueryHandlerBase
from ..bag import CombinedBag
from ..exc import InvalidQueryError


class DocSort(DocQueryHandlerBase):
    """ ORDER BY """

    query_section_name = 'sort'

    def __init__(self, model, bags=None):
        super(DocSort, self).__init__(model, bags)

        #: {field: +1|-1}, in sort order
        self.sort_spec = OrderedDict()

    def _get_supported_bags(self):
        return CombinedBag(
            col=self.bags.columns,
            id=self.bags.identity,
        )

    @classmethod
    def parse(cls, spec) -> OrderedDict:
        """ Bring a sort, in any of its forms, to {field: +1|-1} """
        if not spec:
            return OrderedDict()

        if isinstance(spec, str):
            spec = spec.split()

        if isinstance(spec, (list, tuple)):
            if not all(isinstance(field, str) for field in spec):
                raise InvalidQueryError('sort: a list must only contain field names')
            spec = OrderedDict(cls._parse_field(field) for field in spec)
        elif isinstance(spec, Mapping):
            spec = OrderedDict(spec)
        else:
            raise InvalidQueryError('sort: expected a string, a list, or an object; got {}'
                                    .format(type(spec).__name__))

        for field, direction in spec.items():
            if direction not in (1, -1):
                raise InvalidQueryError('sort: direction for `{}` must be 1 or -1, got {!r}'.format(field, direction))
        return spec

    @staticmethod
    def _parse_field(field):
        """ '-price' -> ('price', -1) """
        if field.startswith('-'):
            return field[1:], -1
        return field, 1

    def input(self, sort_spec):
        super(DocSort, self).input(sort_spec)
        self.sort_spec = self.parse(sort_spec)
        self.validate_properties(self.sort_spec.keys())
        return self

    def compile_columns(self):
        """ ORDER BY clauses """
        clauses = []
        for name, direction in self.sort_spec.items():
            column = self.supported_bags.get(name)
            clauses.append(column.desc() if direction == -1 else column.asc())
        return clauses

    def alter_query(self, stmt):
        if self.sort_spec:
            stmt = stmt.order_by(*self.compile_columns())
        return stmt
