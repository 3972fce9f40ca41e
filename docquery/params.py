"""
### Request Parameters

The API user controls the result set through a flat bag of query string parameters:

```
GET /api/products?search=phone&category=electronics&price[gte]=500&price[lte]=1000&sort=-price,name&page=2&limit=20
```

Five keys are reserved: they drive searching, sorting, pagination and population.
Everything else is a filter: a field name mapped to a value (equality),
or to an object of comparison operators (`gt`, `gte`, `lt`, `lte`, `in`)
which are rewritten into their native form (`$gt`, ...).

This module converts such a bag into MongoDB-style predicates and specs;
it never modifies the bag itself.
"""

import re
from collections import OrderedDict
from typing import Any, Iterable, List, Mapping, Tuple

#: Parameter keys that control the query and are never used as filters
RESERVED_KEYS = ('search', 'sort', 'page', 'limit', 'populate')

#: Comparison operators the API user may use in filters, without the `$` sigil
OPERATOR_TOKENS = ('gt', 'gte', 'lt', 'lte', 'in')

#: The engine's operator sigil
OPERATOR_SIGIL = '$'

#: Descending sort marker: `-price`
DESCENDING_MARKER = '-'

_leading_integer = re.compile(r'^\s*([+-]?\d+)')


def filterable_parameters(raw: Mapping[str, Any]) -> dict:
    """ Get a copy of the parameters with the reserved keys removed """
    return {key: value
            for key, value in raw.items()
            if key not in RESERVED_KEYS}


def rewrite_operators(value):
    """ Rewrite operator tokens into the engine-native form, recursively

        Only mapping keys are rewritten; string values are left alone, no matter what they contain:

            {'price': {'gte': '500'}, 'name': 'in'}
            -> {'price': {'$gte': '500'}, 'name': 'in'}
    """
    if isinstance(value, Mapping):
        return {(OPERATOR_SIGIL + key if key in OPERATOR_TOKENS else key): rewrite_operators(v)
                for key, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [rewrite_operators(v) for v in value]
    return value


def build_predicate(raw: Mapping[str, Any]) -> dict:
    """ Convert the parameters into a filter predicate """
    return rewrite_operators(filterable_parameters(raw))


def parse_int(value, default: int) -> int:
    """ Parse the leading base-10 integer of a value

        Absent, non-numeric, and zero values give the default: no error is ever raised.

            parse_int('2', 1)  #-> 2
            parse_int('20abc', 10)  #-> 20
            parse_int('abc', 10)  #-> 10
            parse_int('0', 1)  #-> 1
            parse_int('-1', 1)  #-> -1
    """
    if value is None or isinstance(value, bool):
        return default
    m = _leading_integer.match(str(value))
    if not m:
        return default
    return int(m.group(1)) or default


def resolve_pagination(raw: Mapping[str, Any], default_limit: int) -> Tuple[int, int, int]:
    """ Get (page, limit, skip) from the `page` and `limit` parameters

        A negative `page` gives a negative skip: it's up to the engine to deal with it.
        A negative `limit` gives the default: a client can't lift the limit.
    """
    page = parse_int(raw.get('page'), 1)
    limit = parse_int(raw.get('limit'), default_limit)
    if limit < 0:
        limit = default_limit
    return page, limit, (page - 1) * limit


def sort_tokens(raw: Mapping[str, Any], default: str) -> List[str]:
    """ Get the list of sort tokens: `sort=-price,name` -> ['-price', 'name'] """
    sort = raw.get('sort')
    if isinstance(sort, (list, tuple)):  # `sort` given more than once
        sort = ','.join(sort)
    spec = sort.split(',') if sort else default.split()
    return [token.strip() for token in spec if token.strip()]


def sort_mapping(tokens: Iterable[str]) -> OrderedDict:
    """ Convert sort tokens into an ordered {field: +1|-1} mapping

        ['-price', 'name'] -> OrderedDict(price=-1, name=+1)
    """
    return OrderedDict(
        (token[1:], -1) if token.startswith(DESCENDING_MARKER) else (token, +1)
        for token in tokens
    )


def search_conditions(fields: Iterable[str], value) -> List[dict]:
    """ Build one case-insensitive substring match per field

        The value is matched literally: regular expression characters are escaped.
    """
    pattern = re.escape(str(value))
    return [{field: {'$regex': pattern, '$options': 'i'}}
            for field in fields]
