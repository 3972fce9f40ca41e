"""
### Execution Modes

A QueryBuilder works in one of two modes:

* `SimpleMode`: refines a `DocumentQuery`, a filtered, sorted, and sliced read
* `AggregationMode`: appends stages to an aggregation pipeline

Both implement the same interface, so the builder never has to check which mode it's in.
"""

from typing import List

from .bag import ID_FIELD


class QueryMode:
    """ Interface: what a QueryBuilder can do with a query """

    def apply_predicate(self, predicate: dict):
        """ AND a predicate to the query """
        raise NotImplementedError

    def apply_sort(self, mapping: dict, tokens: List[str]):
        """ Sort the query

        :param mapping: Ordered {field: +1|-1} mapping
        :param tokens: The same, as a list of sort tokens: ['-price', 'name']
        """
        raise NotImplementedError

    def apply_pagination(self, skip: int, limit: int):
        """ Slice the query """
        raise NotImplementedError

    def apply_join(self, specifier):
        """ Populate a relation: a name, or a {path, ...} object """
        raise NotImplementedError

    async def execute(self) -> list:
        """ Run the query """
        raise NotImplementedError

    async def count(self) -> int:
        """ Count the documents that match the query, ignoring pagination """
        raise NotImplementedError


class SimpleMode(QueryMode):
    """ Refine a DocumentQuery """

    def __init__(self, handle):
        """
        :type handle: docquery.query.DocumentQuery
        """
        self.handle = handle

    def __repr__(self):
        return 'SimpleMode({!r})'.format(self.handle)

    def apply_predicate(self, predicate):
        self.handle = self.handle.find(predicate)

    def apply_sort(self, mapping, tokens):
        self.handle = self.handle.sort(' '.join(tokens))

    def apply_pagination(self, skip, limit):
        self.handle = self.handle.skip(skip).limit(limit)

    def apply_join(self, specifier):
        self.handle = self.handle.populate(specifier)

    async def execute(self):
        return await self.handle.exec()

    async def count(self):
        return await self.handle.count_documents()


class AggregationMode(QueryMode):
    """ Append stages to an aggregation pipeline """

    #: Name of the field that receives the total in the counting pipeline
    COUNT_FIELD = 'total'

    def __init__(self, collection, stages):
        """
        :type collection: docquery.collection.Collection
        :param stages: The initial pipeline. It's copied.
        """
        self.collection = collection
        self.stages = list(stages or ())

    def __repr__(self):
        return 'AggregationMode({!r})'.format(self.stages)

    def apply_predicate(self, predicate):
        self.stages.append({'$match': predicate})

    def apply_sort(self, mapping, tokens):
        self.stages.append({'$sort': mapping})

    def apply_pagination(self, skip, limit):
        self.stages.append({'$skip': skip})
        self.stages.append({'$limit': limit})

    def apply_join(self, specifier):
        # Same-name join only: the relation is the collection, the local field, and the output field
        path = specifier['path'] if isinstance(specifier, dict) else specifier
        self.stages.append({'$lookup': {
            'from': path,
            'localField': path,
            'foreignField': ID_FIELD,
            'as': path,
        }})

    async def execute(self):
        return await self.collection.aggregate(self.stages)

    async def count(self):
        rows = await self.collection.aggregate(self.stages + [{'$count': self.COUNT_FIELD}])
        return rows[0][self.COUNT_FIELD] if rows else 0
