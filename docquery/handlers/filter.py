"""
### Predicates

A predicate selects documents, and becomes the `WHERE` clause.
The language is that of [MongoDB Query Operators](https://docs.mongodb.com/manual/reference/operator/query/):

```python
{
    'category': 'electronics',             # category = 'electronics'
    'price': {'$gte': 500, '$lte': 1000},  # price BETWEEN 500 AND 1000
}
```

Every field in the object is a condition, and all conditions must hold.

#### Field Operators

| operator                        | SQL                         |
|---------------------------------|-----------------------------|
| `{f: v}`, `{f: {$eq: v}}`       | `f = v`                     |
| `{f: {$ne: v}}`                 | `f IS DISTINCT FROM v`      |
| `{f: {$lt: v}}`, `$lte`         | `f < v`, `f <= v`           |
| `{f: {$gt: v}}`, `$gte`         | `f > v`, `f >= v`           |
| `{f: {$in: [..]}}`              | `f IN (..)`                 |
| `{f: {$nin: [..]}}`             | `f NOT IN (..)`             |
| `{f: {$exists: true/false}}`    | `f IS NOT NULL`, `f IS NULL`|
| `{f: {$regex: 'x', $options: 'i'}}`, `{f: re.compile('x')}` | pattern match |

`$in` and `$nin` take a comma-separated string as well: `'a,b,c'`.
`$ne` matches NULLs, just like MongoDB matches documents that don't have the field.

A `$regex` with no special characters in it is a plain substring search, and becomes `LIKE '%x%'`.
Anything else is handed over to the database's regexp operator.

Query strings give nothing but strings, so string values are converted to the type of the column:
`{'price': '500'}` compares with the number 500.

#### Boolean Operators

* `{$and: [p1, p2, ..]}`: every predicate holds
* `{$or: [p1, p2, ..]}`: at least one holds
* `{$nor: [p1, p2, ..]}`: none holds
* `{$not: p}`: the predicate does not hold

#### Related Columns

A column of a related model is named with a dot: `{'brand.country': 'US'}`.
The condition holds when there is a related row it holds for (`EXISTS`).
Conditions on the same relationship share the subquery: they must hold for the same related row.

#### Identity

`_id` is the primary key: `{'_id': 10}`.
"""

import re
import uuid
from datetime import date, datetime, time
from decimal import Decimal

from sqlalchemy import true
from sqlalchemy.sql.expression import and_, or_, not_
from sqlalchemy.sql.functions import func

from .base import DocQueryHandlerBase
from ..bag import CombinedBag
from ..exc import InvalidQueryError, InvalidColumnError


# region Predicate tree

def _is_array(value):
    return isinstance(value, (list, tuple, set, frozenset))


def conjunction(conditions):
    """ AND conditions together; parenthesized, when there's more than one """
    if not conditions:
        return true()
    if len(conditions) == 1:
        return conditions[0]
    return and_(*conditions).self_group()


class Predicate:
    """ A node of a parsed predicate """

    __slots__ = ('operator',)

    def __init__(self, operator):
        self.operator = operator

    def compile_expression(self):
        raise NotImplementedError()


class BooleanPredicate(Predicate):
    """ $and, $or, $nor over lists of predicates; $not over a single one

        `operands` is a list of lists: every inner list is a predicate object, its items ANDed together.
        For $not, there's only one.
    """

    __slots__ = ('operands',)

    def __init__(self, operator, operands):
        super(BooleanPredicate, self).__init__(operator)
        self.operands = operands

    def __repr__(self):
        return '{}{!r}'.format(self.operator, self.operands)

    def compile_expression(self):
        clauses = [conjunction([p.compile_expression() for p in operand])
                   for operand in self.operands]

        if self.operator == '$not':
            return not_(clauses[0])

        combine = and_ if self.operator == '$and' else or_
        expr = combine(*clauses)
        if len(clauses) > 1:
            expr = expr.self_group()
        return ~expr if self.operator == '$nor' else expr


class ColumnPredicate(Predicate):
    """ An operator applied to a column: `price $gte 500` """

    __slots__ = ('bag', 'column_name', 'column', 'compiler', 'value')

    def __init__(self, bag, column_name, column, operator, compiler, value):
        """

        :param bag: the bag the column comes from; it knows the column's type
        :param column_name: the name used in the predicate; can be `_id`, or dotted
        :param column: the column attribute
        :param compiler: callable(column, coerced value, raw value) that builds the SQL expression
        :param value: the operator's argument, as given
        """
        super(ColumnPredicate, self).__init__(operator)
        self.bag = bag
        self.column_name = column_name
        self.column = column
        self.compiler = compiler
        self.value = value

    def __repr__(self):
        return '{} {} {!r}'.format(self.column_name, self.operator, self.value)

    def coerced_value(self):
        """ The argument, with strings converted to the column's type """
        if self.operator in _operators_without_coercion:
            return self.value

        python_type = self.bag.python_type(self.column_name)
        if _is_array(self.value):
            return [coerce_value(python_type, v) for v in self.value]
        return coerce_value(python_type, self.value)

    def compile_condition(self):
        """ The comparison, without any relationship subquery """
        return self.compiler(self.column, self.coerced_value(), self.value)

    def compile_expression(self):
        return self.compile_condition()


class RelatedColumnPredicate(ColumnPredicate):
    """ An operator applied to a column of a related model: `brand.country $eq 'US'` """

    __slots__ = ('relation_name', 'relation', 'relation_is_array')

    def __init__(self, bag, column_name, column, operator, compiler, value):
        super(RelatedColumnPredicate, self).__init__(bag, column_name, column, operator, compiler, value)
        self.relation_name = bag.get_relationship_name(column_name)
        self.relation = bag.get_relationship(column_name)
        self.relation_is_array = bag.is_relationship_array(column_name)

    def compile_expression(self):
        # On its own (e.g. inside $or): an EXISTS subquery of its own
        return exists_related(self.relation, self.relation_is_array, [self.compile_condition()])


def exists_related(relation, is_array, conditions):
    """ EXISTS: a related row matches all conditions """
    if is_array:
        return relation.any(and_(*conditions))
    return relation.has(and_(*conditions))

# endregion


# region Value coercion

_BOOLEAN_STRINGS = {
    'true': True, '1': True, 'yes': True, 'on': True,
    'false': False, '0': False, 'no': False, 'off': False,
}

_operators_without_coercion = frozenset(('$exists', '$regex'))


def coerce_value(python_type, value):
    """ Convert a string value into the Python type of a column

        Values that can't be converted are returned as is: the database will have the last word.
    """
    if not isinstance(value, str) or python_type is None or python_type is str:
        return value

    text = value.strip()
    try:
        if python_type is bool:
            return _BOOLEAN_STRINGS[text.lower()]
        if python_type in (datetime, date, time):
            return python_type.fromisoformat(text)
        if python_type in (int, float, Decimal, uuid.UUID):
            return python_type(text)
    except (KeyError, ValueError, TypeError, ArithmeticError):
        return value
    return value

# endregion


# region Regular expressions

_REGEX_METACHARACTERS = frozenset('.^$*+?{}[]|()')


def regex_literal(pattern: str):
    """ Get the literal text a pattern matches, or None if it's a real regular expression

        'phone' -> 'phone'
        'a\\.b' -> 'a.b'
        'a.b' -> None
    """
    chars = []
    it = iter(pattern)
    for c in it:
        if c == '\\':
            escaped = next(it, None)
            # \d, \w, \b and friends are character classes, not literals
            if escaped is None or escaped.isalnum():
                return None
            chars.append(escaped)
        elif c in _REGEX_METACHARACTERS:
            return None
        else:
            chars.append(c)
    return ''.join(chars)


def _regex_operator(col, val, raw):
    """ $regex: substring LIKE for literal patterns, the dialect's regexp operator for the rest """
    pattern, options = val
    literal = regex_literal(pattern)
    if literal is None:
        return col.regexp_match(pattern, flags=options or None)
    if 'i' in options:
        return func.lower(col).contains(literal.lower(), autoescape=True)
    return col.contains(literal, autoescape=True)


def _regex_from_pattern(value):
    """ re.compile()d pattern -> (pattern, options) """
    return value.pattern, 'i' if value.flags & re.IGNORECASE else ''

# endregion


class DocFilter(DocQueryHandlerBase):
    """ Predicates: the WHERE clause

        Accepts: columns, related columns (dotted), `_id`
    """

    query_section_name = 'filter'

    #: operator -> callable(column, coerced value, raw value)
    #: Conditions must look at the raw value: the coerced one may be an SQL expression
    operators = {
        '$eq':  lambda col, val, raw: col == val,
        # `!=` never matches NULLs
        '$ne':  lambda col, val, raw: col.is_distinct_from(val),
        '$lt':  lambda col, val, raw: col < val,
        '$lte': lambda col, val, raw: col <= val,
        '$gt':  lambda col, val, raw: col > val,
        '$gte': lambda col, val, raw: col >= val,
        '$in':  lambda col, val, raw: col.in_(val),
        '$nin': lambda col, val, raw: col.not_in(val),
        '$exists': lambda col, val, raw: col.is_not(None) if raw else col.is_(None),
        '$regex': _regex_operator,
    }

    #: Operators that take a list
    array_operators = frozenset(('$in', '$nin'))

    #: Operators that take predicates
    boolean_operators = frozenset(('$and', '$or', '$nor', '$not'))

    def __init__(self, model, bags=None):
        super(DocFilter, self).__init__(model, bags)

        #: Parsed predicate: a list of Predicate objects, ANDed together
        self.predicates = None

    def _get_supported_bags(self):
        return CombinedBag(
            col=self.bags.columns,
            id=self.bags.identity,
            rcol=self.bags.related_columns,
        )

    def input(self, criteria):
        super(DocFilter, self).input(criteria)
        self.predicates = self._parse(criteria)
        return self

    def _parse(self, criteria):
        """ Parse a predicate object into a list of Predicate

        :type criteria: dict | None
        :rtype: list[Predicate]
        """
        if not criteria:
            return []
        if not isinstance(criteria, dict):
            raise InvalidQueryError('{}: the predicate must be an object or null, got {}'
                                    .format(self.query_section_name, type(criteria).__name__))

        predicates = []
        for key, arg in criteria.items():
            if key in self.boolean_operators:
                predicate = self._parse_boolean(key, arg)
                if predicate is not None:
                    predicates.append(predicate)
            else:
                predicates.extend(self._parse_field(key, arg))
        return predicates

    def _parse_boolean(self, operator, arg):
        """ {$or: [..]}, {$not: {..}}

        :rtype: BooleanPredicate | None
        """
        if operator == '$not':
            if not isinstance(arg, dict):
                raise InvalidQueryError('{}: $not takes an object'.format(self.query_section_name))
            return BooleanPredicate(operator, [self._parse(arg)])

        if not isinstance(arg, (list, tuple)):
            raise InvalidQueryError('{}: {} takes a list'.format(self.query_section_name, operator))
        # {$or: []} says nothing
        if not arg:
            return None
        return BooleanPredicate(operator, [self._parse(p) for p in arg])

    def _parse_field(self, column_name, condition):
        """ {price: 1}, {price: {$gt: 1, $lt: 2}}

        :rtype: list[ColumnPredicate]
        """
        try:
            bag_name, bag, column = self.supported_bags[column_name]
        except KeyError:
            raise InvalidColumnError(self.bags.model_name, column_name, self.query_section_name)
        predicate_cls = RelatedColumnPredicate if bag_name == 'rcol' else ColumnPredicate

        # Shorthands: a value is $eq, a compiled pattern is $regex
        if isinstance(condition, re.Pattern):
            pattern, options = _regex_from_pattern(condition)
            condition = {'$regex': pattern, '$options': options}
        elif not isinstance(condition, dict):
            condition = {'$eq': condition}

        if '$options' in condition and '$regex' not in condition:
            raise InvalidQueryError('{}: $options without $regex for column `{}`'
                                    .format(self.query_section_name, column_name))

        predicates = []
        for operator, value in condition.items():
            # an argument of $regex
            if operator == '$options':
                continue
            if operator not in self.operators:
                raise InvalidQueryError('{}: unsupported operator "{}" for column `{}`'
                                        .format(self.query_section_name, operator, column_name))

            value = self._operator_argument(column_name, operator, value, condition.get('$options'))
            predicates.append(predicate_cls(bag, column_name, column, operator, self.operators[operator], value))
        return predicates

    def _operator_argument(self, column_name, operator, value, options):
        """ Validate an operator's argument """
        if operator in self.array_operators:
            # `?price[$in]=1,2,3`
            if isinstance(value, str):
                value = value.split(',')
            if not _is_array(value):
                raise InvalidQueryError('{}: {} takes a list for column `{}`'
                                        .format(self.query_section_name, operator, column_name))
        elif operator == '$regex':
            if isinstance(value, re.Pattern):
                value, options = _regex_from_pattern(value)
            options = options or ''
            if not isinstance(value, str) or not isinstance(options, str):
                raise InvalidQueryError('{}: $regex takes a string for column `{}`'
                                        .format(self.query_section_name, column_name))
            value = (value, options)
        return value

    def compile_statement(self):
        """ Compile the predicate into a single condition

            Top-level conditions on the same relationship go into one EXISTS subquery.

        :rtype: sqlalchemy.sql.elements.ColumnElement
        """
        conditions = []
        per_relation = {}
        for p in self.predicates:
            if isinstance(p, RelatedColumnPredicate):
                per_relation.setdefault(p.relation_name, []).append(p)
            else:
                conditions.append(p.compile_expression())

        for predicates in per_relation.values():
            first = predicates[0]
            conditions.append(exists_related(first.relation, first.relation_is_array,
                                             [p.compile_condition() for p in predicates]))

        return conjunction(conditions)

    def alter_query(self, stmt):
        # Nothing to filter: no WHERE at all
        if not self.predicates:
            return stmt
        return stmt.where(self.compile_statement())
