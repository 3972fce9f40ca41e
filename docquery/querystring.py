""" Decode query strings with bracket notation into nested parameters

    price[gte]=500&price[lte]=1000&tags[]=a&tags[]=b
    -> {'price': {'gte': '500', 'lte': '1000'}, 'tags': ['a', 'b']}
"""

import re
from typing import Iterable, Mapping, Tuple, Union
from urllib.parse import parse_qsl

_key_path = re.compile(r'\[([^\[\]]*)\]')


def parse_query_string(qs: str) -> dict:
    """ Parse a raw query string into nested parameters """
    return nest_parameters(parse_qsl(qs.lstrip('?'), keep_blank_values=True))


def nest_parameters(pairs: Union[Mapping, Iterable[Tuple[str, str]]]) -> dict:
    """ Build nested parameters from (key, value) pairs that use bracket notation

        :param pairs: A mapping, or an iterable of (key, value) pairs, like a multi-dict's items()
    """
    if isinstance(pairs, Mapping):
        pairs = pairs.items()

    params = {}
    for key, value in pairs:
        path = _split_key(key)
        _assign(params, path, value)
    return params


def _split_key(key: str) -> list:
    """ 'price[gte]' -> ['price', 'gte'] ; 'tags[]' -> ['tags', ''] """
    bracket = key.find('[')
    if bracket <= 0 or not key.endswith(']'):
        return [key]
    return [key[:bracket]] + _key_path.findall(key[bracket:])


def _assign(target: dict, path: list, value):
    head, rest = path[0], path[1:]

    # Leaf
    if not rest:
        if head in target and not isinstance(target[head], dict):
            # Repeated key: collect values into a list
            existing = target[head]
            target[head] = (existing if isinstance(existing, list) else [existing]) + [value]
        elif head not in target:
            target[head] = value
        return

    # Array: `tags[]=a`
    if rest == ['']:
        existing = target.get(head)
        if isinstance(existing, list):
            existing.append(value)
        elif existing is None or isinstance(existing, dict):
            target[head] = [value]
        else:
            target[head] = [existing, value]
        return

    # Object: a nested form replaces a scalar
    if not isinstance(target.get(head), dict):
        target[head] = {}
    _assign(target[head], rest, value)
