"""
### Populate

Population replaces a reference with the referenced rows: it eagerly loads related models.

#### Syntax

* Relation name: `'category'`, or several names separated by whitespace: `'category reviews'`
* Object:

    ```python
    {
        'path': 'reviews',  # the relationship to load
        'select': 'rating text',  # load only these columns of the related model
        'match': {'rating': {'$gte': 4}},  # only load related rows that match
        'populate': 'author',  # nested population: the same syntax, recursively
    }
    ```

* A list of any of the above.

Collections are loaded with `selectinload()`, scalar relationships with `joinedload()`.
"""

from sqlalchemy.orm import selectinload, joinedload

from .base import DocQueryHandlerBase
from .filter import DocFilter
from ..bag import ModelPropertyBags
from ..exc import InvalidQueryError, InvalidRelationError, DisabledError


class Population:
    """ One relationship to populate """

    __slots__ = ('path', 'select', 'match', 'populate')

    def __init__(self, path, select=None, match=None, populate=None):
        self.path = path
        self.select = select
        self.match = match
        self.populate = populate

    def __repr__(self):
        return 'Population({!r})'.format(self.path)


class DocPopulate(DocQueryHandlerBase):
    """ MongoDB-style population

        Supports: Relationships
    """

    query_section_name = 'populate'

    def __init__(self, model, bags=None, allowed_relations=None, banned_relations=None):
        """ Init population

        :param allowed_relations: List of relations that can be populated. When `None`: all of them
        :param banned_relations: List of relations that cannot be populated
        """
        super(DocPopulate, self).__init__(model, bags)

        # Security
        self.allowed_relations = set(allowed_relations) if allowed_relations is not None else None
        self.banned_relations = set(banned_relations or ())

        # On input
        #: list[Population]
        self.populations = []

    def _get_supported_bags(self):
        return self.bags.relations

    def get_relationship(self, relation_name, where=None):
        """ Get a relationship that this handler is allowed to load

        :raises InvalidRelationError: no such relationship
        :raises DisabledError: the relationship is not allowed by the settings
        """
        if relation_name not in self.bags.relations:
            raise InvalidRelationError(self.bags.model_name, relation_name, where or self.query_section_name)
        if relation_name in self.banned_relations or \
                (self.allowed_relations is not None and relation_name not in self.allowed_relations):
            raise DisabledError('{}: relation "{}" is not allowed'.format(where or self.query_section_name,
                                                                        relation_name))
        return self.bags.relations[relation_name]

    def input(self, spec):
        super(DocPopulate, self).input(spec)
        self.populations = self.parse(spec)
        for p in self.populations:
            self.get_relationship(p.path)
        return self

    @classmethod
    def parse(cls, spec):
        """ Convert any supported population syntax into a list of Population objects """
        if not spec:
            return []
        if isinstance(spec, Population):
            return [spec]
        if isinstance(spec, str):
            return [Population(name) for name in spec.split()]
        if isinstance(spec, dict):
            if not isinstance(spec.get('path'), str) or not spec['path']:
                raise InvalidQueryError('populate: the object must have a `path`')
            return [Population(name,
                               select=spec.get('select'),
                               match=spec.get('match'),
                               populate=spec.get('populate'))
                    for name in spec['path'].split()]
        if isinstance(spec, (list, tuple)):
            return [p for s in spec for p in cls.parse(s)]
        raise InvalidQueryError('populate must be a string, an object, or a list; {} provided'.format(type(spec)))

    def compile_options(self):
        """ Compile a list of loader options for Select.options() """
        return [self._compile_loader(p) for p in self.populations]

    def _compile_loader(self, population: Population):
        relationship = self.bags.relations[population.path]
        target_model = self.bags.relations.get_target_model(population.path)
        target_bags = ModelPropertyBags.for_model(target_model)

        # match: filter the related rows
        if population.match:
            criteria = DocFilter(target_model, target_bags).input(population.match).compile_statement()
            relationship = relationship.and_(criteria)

        # Load the relationship
        if self.bags.relations.is_relationship_array(population.path):
            load = selectinload(relationship)
        else:
            load = joinedload(relationship)

        # select: load only some columns
        if population.select:
            select = population.select.split() if isinstance(population.select, str) else list(population.select)
            invalid = target_bags.columns.get_invalid_names(select)
            if invalid:
                raise InvalidQueryError('populate: invalid column "{}" selected from "{}"'
                                        .format(invalid.pop(), population.path))
            load = load.load_only(*[target_bags.columns[name] for name in select])

        # populate: nested
        if population.populate:
            nested = DocPopulate(target_model, target_bags).input(population.populate)
            load = load.options(*nested.compile_options())

        return load

    def alter_query(self, stmt):
        if not self.populations:
            return stmt
        return stmt.options(*self.compile_options())
