"""
If you know how to query documents in MongoDB, you can query your database with the same language.
DocQuery uses the familiar [MongoDB Query Operators](https://docs.mongodb.com/manual/reference/operator/query/)
language, and these handlers translate it into SqlAlchemy statements:

* `DocFilter`: predicates, the `WHERE` clause
* `DocSort`: sorting, the `ORDER BY` clause
* `DocLimit`: slicing, the `LIMIT .. OFFSET ..` clause
* `DocPopulate`: eager loading of related models

Detailed syntax for every handler is provided in the relevant module.
"""

from .filter import DocFilter, \
    Predicate, BooleanPredicate, ColumnPredicate, RelatedColumnPredicate
from .sort import DocSort
from .limit import DocLimit
from .populate import DocPopulate, Population
