from itertools import chain
from typing import Union, Set, Mapping, Iterable, Tuple, FrozenSet, List

from sqlalchemy import inspect, Column, TypeDecorator
from sqlalchemy.orm import ColumnProperty, RelationshipProperty
from sqlalchemy.orm.interfaces import MapperProperty


#: Name of the field that always refers to the primary key, like MongoDB's `_id`
ID_FIELD = '_id'


class ModelPropertyBags:
    """ Everything DocQuery needs to know about the properties of a model

        Handlers never inspect models themselves: they look names up in these bags:

        - `columns`: column attributes, by name
        - `relations`: relationships, by name
        - `related_columns`: columns of related models, with dot-notation: 'brand.name'
        - `pk`: primary key columns
        - `identity`: the `_id` alias of the primary key

        A handler that accepts names from several bags combines them with a `CombinedBag()`.
    """
    __bags_per_model_cache = {}

    @classmethod
    def for_model(cls, model) -> 'ModelPropertyBags':
        """ Get bags for a model; they're only initialized once per model """
        bags = cls.__bags_per_model_cache.get(model)
        if bags is None:
            # Not inherited: every model has its own bags
            bags = cls.__bags_per_model_cache[model] = cls(model)
        return bags

    def __init__(self, model):
        """ Inspect a model

        :type model: sqlalchemy.orm.DeclarativeMeta
        """
        insp = inspect(model)

        self.model = model
        self.model_name = model.__name__

        self.columns = ColumnsBag(_get_model_columns(model, insp))
        self.relations = RelationshipsBag(_get_model_relationships(model, insp))
        self.related_columns = DotRelatedColumnsBag(_get_model_relationships(model, insp))

        #: Names of primary key attributes, in the order the mapper lists them
        self.pk_names = [insp.get_property_by_column(c).key for c in insp.primary_key]
        self.pk = ColumnsBag({name: self.columns[name] for name in self.pk_names})
        self.identity = self._init_identity()

    def _init_identity(self):
        """ Alias `_id` to the primary key

            Only when the primary key is a single column, and the model has no `_id` column of its own.
        """
        if len(self.pk_names) != 1 or ID_FIELD in self.columns:
            return ColumnsBag({})
        return ColumnsBag({ID_FIELD: self.pk[self.pk_names[0]]})

    @property
    def pk_columns(self) -> List[MapperProperty]:
        """ Primary key columns """
        return [self.pk[name] for name in self.pk_names]

    @property
    def all_names(self) -> Set[str]:
        """ Names of all columns and relationships """
        return self.columns.names | self.relations.names


class _PropertiesBagBase:
    """ A named collection of model properties

        Every bag answers the same questions: which names are there, and what's behind a name.
    """

    def __contains__(self, name: str) -> bool:
        raise NotImplementedError

    def __getitem__(self, name: str) -> MapperProperty:
        raise NotImplementedError

    def __iter__(self) -> Iterable[Tuple[str, MapperProperty]]:
        raise NotImplementedError

    @property
    def names(self) -> FrozenSet[str]:
        """ All names in the bag """
        raise NotImplementedError

    def get_invalid_names(self, names: Iterable[str]) -> Set[str]:
        """ Pick the names that are not in the bag """
        return set(names) - self.names


class ColumnsBag(_PropertiesBagBase):
    """ Columns, by name """

    def __init__(self, columns: Mapping[str, ColumnProperty]):
        self._columns = dict(columns)
        self._names = frozenset(self._columns)

    def __contains__(self, name: str) -> bool:
        return name in self._columns

    def __getitem__(self, name: str) -> ColumnProperty:
        return self._columns[name]

    def __iter__(self) -> Iterable[Tuple[str, ColumnProperty]]:
        return iter(self._columns.items())

    @property
    def names(self) -> FrozenSet[str]:
        return self._names

    def python_type(self, name: str) -> Union[type, None]:
        """ Get the Python type of a column's values; `None` when the column type can't tell """
        column_type = self[name].type
        # Type decorators wrap an implementation type
        if isinstance(column_type, TypeDecorator):
            column_type = column_type.impl
        try:
            return column_type.python_type
        except NotImplementedError:
            return None


class RelationshipsBag(_PropertiesBagBase):
    """ Relationships, by name """

    def __init__(self, relationships: Mapping[str, RelationshipProperty]):
        self._relations = dict(relationships)
        self._names = frozenset(self._relations)
        #: Names of relationships that load lists
        self._array_names = frozenset(name
                                      for name, rel in self._relations.items()
                                      if rel.property.uselist)

    def __contains__(self, name: str) -> bool:
        return name in self._relations

    def __getitem__(self, name: str) -> RelationshipProperty:
        return self._relations[name]

    def __iter__(self) -> Iterable[Tuple[str, RelationshipProperty]]:
        return iter(self._relations.items())

    @property
    def names(self) -> FrozenSet[str]:
        return self._names

    def is_relationship_array(self, name: str) -> bool:
        """ Does the relationship load a list? """
        return name in self._array_names

    def get_target_model(self, name: str):
        """ Get the model a relationship points to """
        return self[name].property.mapper.class_


class DotRelatedColumnsBag(ColumnsBag):
    """ Columns of related models, by 'relationship.column' name """

    def __init__(self, relationships: Mapping[str, RelationshipProperty]):
        self._rel_bag = RelationshipsBag(relationships)

        related_columns = {}
        for rel_name, relation in self._rel_bag:
            target = self._rel_bag.get_target_model(rel_name)
            for col_name, col in _get_model_columns(target, inspect(target)).items():
                related_columns['{}.{}'.format(rel_name, col_name)] = col

        super(DotRelatedColumnsBag, self).__init__(related_columns)

    def get_relationship_name(self, col_name: str) -> str:
        """ 'brand.name' -> 'brand' """
        return col_name.split('.', 1)[0]

    def get_relationship(self, col_name: str) -> RelationshipProperty:
        return self._rel_bag[self.get_relationship_name(col_name)]

    def is_relationship_array(self, col_name: str) -> bool:
        """ Does the relationship of this column load a list?

            Accepts a relationship name as well: 'reviews' and 'reviews.rating' give the same answer.
        """
        return self._rel_bag.is_relationship_array(self.get_relationship_name(col_name))


class CombinedBag(_PropertiesBagBase):
    """ Several bags, looked up as one

        Every bag is given a short alias:

            cbag = CombinedBag(col=bags.columns, rcol=bags.related_columns)

        and a lookup tells which bag the name came from, so that a handler can treat it accordingly:

            bag_name, bag, col = cbag['brand.name']
            bag_name  #-> 'rcol'
            bag  #-> bags.related_columns
            col  #-> Brand.name
    """

    def __init__(self, **bags):
        self._bags = bags
        self._names = frozenset(chain.from_iterable(bag.names for bag in bags.values()))

        # name -> alias of the bag that has it
        self._bag_names = {}
        for bag_name, bag in bags.items():
            for name in bag.names:
                self._bag_names.setdefault(name, bag_name)

    def __contains__(self, name: str) -> bool:
        return name in self._bag_names

    def __getitem__(self, name: str) -> Tuple[str, _PropertiesBagBase, MapperProperty]:
        bag_name = self._bag_names[name]
        bag = self._bags[bag_name]
        return bag_name, bag, bag[name]

    def __iter__(self) -> Iterable[Tuple[str, MapperProperty]]:
        return ((name, self.get(name)) for name in self._bag_names)

    @property
    def names(self) -> FrozenSet[str]:
        return self._names

    def get(self, name: str) -> MapperProperty:
        """ Get a property, from whichever bag has it """
        return self[name][2]


def _get_model_columns(model, insp) -> dict:
    """ Column attributes of a model, in the order they're declared """
    return {name: getattr(model, name)
            for name, prop in insp.column_attrs.items()
            # column_property() expressions are not columns
            if isinstance(prop.expression, Column)}


def _get_model_relationships(model, insp) -> dict:
    """ Relationship attributes of a model """
    return {name: getattr(model, name)
            for name in insp.relationships.keys()}
