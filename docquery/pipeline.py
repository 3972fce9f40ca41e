"""
### Aggregation Pipeline

A pipeline is a list of stages, processed in order.
Every stage is an object with a single key:

* `{'$match': predicate}` - filter rows. See [Predicates](handlers/filter.py)
* `{'$sort': {field: +1|-1, ...}}` - sort rows
* `{'$skip': n}`, `{'$limit': n}` - slice rows
* `{'$lookup': {from, localField, foreignField, as}}` - join related rows into every document, as a list
* `{'$count': 'total'}` - count the rows instead of returning them: `[{'total': n}]`, or `[]` when there are none
* `{'$project': {field: 1|0, ...}}` - include (or exclude) document fields

Example:

```python
await products.aggregate([
    {'$match': {'category': 'electronics'}},
    {'$sort': {'price': -1}},
    {'$skip': 20},
    {'$limit': 20},
    {'$lookup': {'from': 'reviews', 'localField': 'reviews', 'foreignField': '_id', 'as': 'reviews'}},
])
```

The pipeline compiles into a single SELECT.
When a stage has to see the result of a slice (e.g. `$match` after `$limit`), the rows selected so far
are wrapped into a primary key subquery:

    SELECT * FROM products WHERE id IN (SELECT id FROM products ... LIMIT 10) AND <match>

`$lookup` has two flavors:

* `localField` names a relationship: it's loaded with SqlAlchemy, and `foreignField` must be `_id`,
  or the primary key of the related model.
* Otherwise, `from` names a table, and `localField` / `foreignField` name columns:
  the related rows are fetched with a separate query, after the main one.
"""

import logging
from collections import OrderedDict

from sqlalchemy import select, func, tuple_

from .bag import ModelPropertyBags, ID_FIELD
from .handlers import DocFilter, DocSort, DocLimit, Population
from .exc import InvalidQueryError, InvalidColumnError

logger = logging.getLogger(__name__)


def instance_to_document(instance) -> dict:
    """ Convert a model instance into a dict of its column values """
    bags = ModelPropertyBags.for_model(type(instance))
    return {name: getattr(instance, name)
            for name, column in bags.columns}


# region Post-processing steps

class RelationshipLookup:
    """ $lookup through a relationship: the rows are loaded eagerly, we only have to pick them up """

    def __init__(self, relation_name, as_name, is_array):
        self.relation_name = relation_name
        self.as_name = as_name
        self.is_array = is_array

    async def apply(self, ssn, instances, documents):
        for instance, document in zip(instances, documents):
            related = getattr(instance, self.relation_name)
            if not self.is_array:
                related = [related] if related is not None else []
            document[self.as_name] = [instance_to_document(r) for r in related]


class TableLookup:
    """ $lookup through columns: an additional query fetches the related rows """

    def __init__(self, table, local_field, foreign_column, as_name):
        self.table = table
        self.local_field = local_field
        self.foreign_column = foreign_column
        self.as_name = as_name

    async def apply(self, ssn, instances, documents):
        values = {document.get(self.local_field) for document in documents} - {None}

        # Group related rows by the value of the foreign column
        matches = {}
        if values:
            stmt = select(self.table).where(self.foreign_column.in_(list(values)))
            logger.debug('$lookup from %s: %s', self.table.name, stmt)
            for row in (await ssn.execute(stmt)).mappings():
                matches.setdefault(row[self.foreign_column.key], []).append(dict(row))

        for document in documents:
            document[self.as_name] = matches.get(document.get(self.local_field), [])


class Projection:
    """ $project: include or exclude document fields """

    def __init__(self, spec):
        if not isinstance(spec, dict) or not spec:
            raise InvalidQueryError('$project must be a non-empty object')
        modes = {bool(v) for v in spec.values()}
        if len(modes) > 1:
            raise InvalidQueryError('$project cannot mix inclusion and exclusion')
        self.include = modes.pop()
        self.fields = frozenset(spec)

    async def apply(self, ssn, instances, documents):
        for i, document in enumerate(documents):
            documents[i] = {k: v
                            for k, v in document.items()
                            if (k in self.fields) == self.include}

# endregion


class AggregationPipeline:
    """ Compiles an aggregation pipeline into SqlAlchemy statements, and runs it """

    def __init__(self, collection, stages):
        """ Init a pipeline

        :type collection: docquery.collection.Collection
        :param stages: list of stages
        """
        self.collection = collection
        self.model = collection.model
        self.bags = collection.bags
        self.stages = list(stages)

        # Compiled state: the rows selected so far
        self._stmt = collection.filter_handler(None).alter_query(select(self.model))
        self._sort = OrderedDict()
        self._skip = None
        self._limit = None

        # Relationships to load eagerly, and steps to run on the documents
        self._populate = []
        self._post_processing = []

        #: Name of the $count field; `None` if not counting
        self._count_field = None

    def __repr__(self):
        return 'AggregationPipeline({}, {!r})'.format(self.model.__name__, self.stages)

    # region Compile stages

    def compile(self):
        """ Process every stage

        :raises InvalidQueryError: unsupported or malformed stage
        """
        for stage in self.stages:
            if not isinstance(stage, dict) or len(stage) != 1:
                raise InvalidQueryError('Pipeline stage must be an object with exactly one key: {!r}'.format(stage))
            if self._count_field is not None:
                raise InvalidQueryError('No pipeline stage can follow $count')

            (name, arg), = stage.items()
            try:
                method = self._stage_methods[name]
            except KeyError:
                raise InvalidQueryError('Unsupported pipeline stage: {}'.format(name))
            method(self, arg)
        return self

    def _stage_match(self, criteria):
        if self._has_window:
            self._wrap_window()
        self._stmt = DocFilter(self.model, self.bags).input(criteria).alter_query(self._stmt)

    def _stage_sort(self, spec):
        sort = DocSort(self.model, self.bags).input(spec)
        if self._has_window:
            self._wrap_window()
        self._sort = sort.sort_spec

    def _stage_skip(self, n):
        n = DocLimit.clamp(n, '$skip')
        if n is None:
            return
        if self._limit is not None:
            # OFFSET is applied before LIMIT; here, it has to be applied after
            self._wrap_window()
        self._skip = (self._skip or 0) + n

    def _stage_limit(self, n):
        n = DocLimit.clamp(n, '$limit')
        if n is None:
            return
        self._limit = n if self._limit is None else min(self._limit, n)

    def _stage_lookup(self, spec):
        if not isinstance(spec, dict) or not all(isinstance(spec.get(k), str)
                                                 for k in ('from', 'localField', 'foreignField', 'as')):
            raise InvalidQueryError('$lookup must be an object with string keys: from, localField, foreignField, as')

        local_field = spec['localField']
        if local_field in self.bags.relations:
            self._lookup_relationship(local_field, spec['foreignField'], spec['as'])
        else:
            self._lookup_table(spec['from'], local_field, spec['foreignField'], spec['as'])

    def _lookup_relationship(self, relation_name, foreign_field, as_name):
        # Security and validation
        self.collection.populate_handler(Population(relation_name))

        target_bags = ModelPropertyBags.for_model(self.bags.relations.get_target_model(relation_name))
        if foreign_field != ID_FIELD and foreign_field not in target_bags.pk_names:
            raise InvalidQueryError('$lookup: relationship "{}" can only be joined by its primary key, not "{}"'
                                    .format(relation_name, foreign_field))

        self._populate.append(Population(relation_name))
        self._post_processing.append(RelationshipLookup(
            relation_name, as_name,
            self.bags.relations.is_relationship_array(relation_name)
        ))

    def _lookup_table(self, table_name, local_field, foreign_field, as_name):
        table = self.model.metadata.tables.get(table_name)
        if table is None:
            raise InvalidQueryError('$lookup: unknown collection "{}"'.format(table_name))
        if local_field not in self.bags.columns:
            raise InvalidColumnError(self.bags.model_name, local_field, '$lookup')

        if foreign_field == ID_FIELD and len(table.primary_key.columns) == 1:
            foreign_column, = table.primary_key.columns
        elif foreign_field in table.c:
            foreign_column = table.c[foreign_field]
        else:
            raise InvalidColumnError(table_name, foreign_field, '$lookup')

        self._post_processing.append(TableLookup(table, local_field, foreign_column, as_name))

    def _stage_count(self, name):
        if not isinstance(name, str) or not name or name.startswith('$') or '.' in name:
            raise InvalidQueryError('$count must be a non-empty field name')
        self._count_field = name

    def _stage_project(self, spec):
        self._post_processing.append(Projection(spec))

    _stage_methods = {
        '$match': _stage_match,
        '$sort': _stage_sort,
        '$skip': _stage_skip,
        '$limit': _stage_limit,
        '$lookup': _stage_lookup,
        '$count': _stage_count,
        '$project': _stage_project,
    }

    # endregion

    # region Statements

    @property
    def _has_window(self):
        return self._skip is not None or self._limit is not None

    def _window_statement(self, stmt, max_items=None):
        """ Apply the current sort and slice to a statement """
        stmt = DocSort(self.model, self.bags).input(self._sort).alter_query(stmt)
        return DocLimit(self.model, self.bags, max_items=max_items).input(self._skip, self._limit).alter_query(stmt)

    def _wrap_window(self):
        """ Turn the rows selected so far into a primary key subquery

            The sort is kept: it remains in effect until another $sort replaces it.
        """
        pk_columns = self.bags.pk_columns
        inner = self._window_statement(self._stmt.with_only_columns(*pk_columns))
        if len(pk_columns) == 1:
            condition = pk_columns[0].in_(inner)
        else:
            condition = tuple_(*pk_columns).in_(inner)

        self._stmt = select(self.model).where(condition)
        self._skip = self._limit = None

    def statement(self):
        """ Get the statement that selects documents """
        stmt = self._window_statement(self._stmt, max_items=self.collection.settings['max_items'])
        return self.collection.populate_handler(self._populate).alter_query(stmt)

    def count_statement(self):
        """ Get the statement that counts documents """
        # Sorting does not matter when counting
        stmt = DocLimit(self.model, self.bags).input(self._skip, self._limit).alter_query(self._stmt)
        return select(func.count()).select_from(stmt.subquery())

    # endregion

    async def execute(self) -> list:
        """ Run the pipeline, get a list of dicts """
        self.compile()
        ssn = self.collection.ssn
        logger.debug('Aggregating %s: %r', self.model.__name__, self.stages)

        if self._count_field is not None:
            n = (await ssn.execute(self.count_statement())).scalar_one()
            return [{self._count_field: n}] if n else []

        instances = await self.collection.fetch_all(self.statement())
        documents = [instance_to_document(instance) for instance in instances]
        for step in self._post_processing:
            await step.apply(ssn, instances, documents)
        return documents
