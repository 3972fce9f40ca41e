from collections import OrderedDict
from copy import copy

from sqlalchemy import select

from .handlers import DocSort, DocLimit, DocPopulate


def merge_conditions(a, b):
    """ Combine two predicates: AND them together

        Disjoint keys are put into one object; when both predicates mention the same key, `$and` is used
        so that neither of them overwrites the other:

            merge_conditions({'a': 1}, {'b': 2})  #-> {'a': 1, 'b': 2}
            merge_conditions({'a': 1}, {'a': 2})  #-> {'$and': [{'a': 1}, {'a': 2}]}
    """
    if not b:
        return dict(a or {})
    if not a:
        return dict(b)
    if set(a).isdisjoint(b):
        return {**a, **b}
    return {'$and': [a, b]}


class DocumentQuery:
    """ A query that has not been executed yet

        Every method is generative: it returns a refined copy, and the original query remains the same.

        Example:

            ```python
            q = products.find({'category': 'electronics'}).sort('-price').skip(20).limit(20)

            # Execute
            rows = await q.exec()
            # or just
            rows = await q
            ```
    """

    def __init__(self, collection, conditions=None):
        """ Init a query

        :param collection: The collection that runs this query
        :type collection: docquery.collection.Collection
        :param conditions: The initial predicate
        """
        #: The collection: it executes queries, counts, and aggregation pipelines
        self.collection = collection

        self._conditions = dict(conditions or {})
        self._sort = OrderedDict()
        self._skip = None
        self._limit = None
        self._populate = []

    def __copy__(self):
        cls = self.__class__
        result = cls.__new__(cls)
        result.__dict__.update(self.__dict__)
        # Containers are copied: they're not shared between refinements
        result._conditions = dict(self._conditions)
        result._sort = OrderedDict(self._sort)
        result._populate = list(self._populate)
        return result

    def __repr__(self):
        return 'DocumentQuery({}, {!r})'.format(self.collection.model.__name__, self._conditions)

    # region Refinements

    def find(self, conditions=None) -> 'DocumentQuery':
        """ Merge a predicate into the current one """
        q = copy(self)
        q._conditions = merge_conditions(self._conditions, conditions)
        return q

    def sort(self, spec) -> 'DocumentQuery':
        """ Sort by the given fields

        :param spec: '-price name', ['-price', 'name'], or OrderedDict(price=-1, name=+1)
        """
        q = copy(self)
        q._sort.update(DocSort.parse(spec))
        return q

    def skip(self, n) -> 'DocumentQuery':
        """ Skip `n` rows; `None`, zero, and negatives mean no skip """
        q = copy(self)
        q._skip = DocLimit.clamp(n, 'skip')
        return q

    def limit(self, n) -> 'DocumentQuery':
        """ Return at most `n` rows; `None`, zero, and negatives mean no limit """
        q = copy(self)
        q._limit = DocLimit.clamp(n, 'limit')
        return q

    def populate(self, spec) -> 'DocumentQuery':
        """ Eagerly load a relationship. See DocPopulate for the syntax """
        q = copy(self)
        q._populate.extend(DocPopulate.parse(spec))
        return q

    # endregion

    def get_filter(self) -> dict:
        """ Get the current predicate """
        return dict(self._conditions)

    def get_sort(self) -> OrderedDict:
        """ Get the current sort spec """
        return OrderedDict(self._sort)

    def statement(self):
        """ Compile the query into an SqlAlchemy statement

        :rtype: sqlalchemy.sql.Select
        :raises InvalidQueryError: syntax error in any part of the query
        :raises InvalidColumnError: invalid column name
        :raises InvalidRelationError: invalid relationship name
        """
        collection = self.collection
        stmt = select(collection.model)
        stmt = collection.filter_handler(self._conditions).alter_query(stmt)
        stmt = DocSort(collection.model, collection.bags).input(self._sort).alter_query(stmt)
        stmt = collection.limit_handler(self._skip, self._limit).alter_query(stmt)
        stmt = collection.populate_handler(self._populate).alter_query(stmt)
        return stmt

    async def exec(self) -> list:
        """ Execute the query, get model instances """
        return await self.collection.fetch_all(self.statement())

    async def count_documents(self) -> int:
        """ Count the rows that match the predicate, ignoring skip and limit """
        return await self.collection.count_documents(self._conditions)

    def __await__(self):
        return self.exec().__await__()
