import re
import unittest
from collections import OrderedDict

from docquery import params
from docquery.querystring import parse_query_string, nest_parameters


class ParamsTest(unittest.TestCase):
    """ Test request parameters """

    def test_filterable_parameters(self):
        raw = {'search': 'phone', 'sort': '-price', 'page': '2', 'limit': '20', 'populate': 'brand',
               'category': 'electronics', 'price': {'gte': '500'}}
        snapshot = dict(raw)

        self.assertEqual(params.filterable_parameters(raw),
                         {'category': 'electronics', 'price': {'gte': '500'}})
        # Not modified
        self.assertEqual(raw, snapshot)

    def test_rewrite_operators(self):
        # Test: operators
        self.assertEqual(
            params.rewrite_operators({'price': {'gt': '1', 'gte': '2', 'lt': '3', 'lte': '4'}, 'id': {'in': ['1', '2']}}),
            {'price': {'$gt': '1', '$gte': '2', '$lt': '3', '$lte': '4'}, 'id': {'$in': ['1', '2']}}
        )

        # Test: values are never touched, even when they look like operators
        self.assertEqual(
            params.rewrite_operators({'name': 'in', 'text': 'gt lt gte', 'tags': ['in', 'lte']}),
            {'name': 'in', 'text': 'gt lt gte', 'tags': ['in', 'lte']}
        )

        # Test: words that only contain an operator
        self.assertEqual(
            params.rewrite_operators({'price': {'gtx': '1', 'login': '2'}}),
            {'price': {'gtx': '1', 'login': '2'}}
        )

        # Test: nested in lists
        self.assertEqual(
            params.rewrite_operators({'$or': [{'price': {'lt': 10}}, {'price': {'gt': 100}}]}),
            {'$or': [{'price': {'$lt': 10}}, {'price': {'$gt': 100}}]}
        )

    def test_build_predicate(self):
        raw = {'search': 'x', 'category': 'electronics', 'price': {'gte': '500', 'lte': '1000'}}
        self.assertEqual(params.build_predicate(raw),
                         {'category': 'electronics', 'price': {'$gte': '500', '$lte': '1000'}})
        # Not modified
        self.assertEqual(raw['price'], {'gte': '500', 'lte': '1000'})

    def test_parse_int(self):
        self.assertEqual(params.parse_int('2', 1), 2)
        self.assertEqual(params.parse_int(5, 1), 5)
        self.assertEqual(params.parse_int(' 12abc', 1), 12)
        self.assertEqual(params.parse_int('-3', 1), -3)

        # Fail-open
        self.assertEqual(params.parse_int(None, 10), 10)
        self.assertEqual(params.parse_int('', 10), 10)
        self.assertEqual(params.parse_int('abc', 10), 10)
        self.assertEqual(params.parse_int('0', 10), 10)
        self.assertEqual(params.parse_int(['1'], 10), 10)
        self.assertEqual(params.parse_int(True, 10), 10)

    def test_resolve_pagination(self):
        self.assertEqual(params.resolve_pagination({'page': '2', 'limit': '20'}, 10), (2, 20, 20))
        self.assertEqual(params.resolve_pagination({}, 10), (1, 10, 0))
        self.assertEqual(params.resolve_pagination({'page': 'x', 'limit': 'y'}, 15), (1, 15, 0))
        self.assertEqual(params.resolve_pagination({'page': '3'}, 15), (3, 15, 30))

        # Negative page: negative skip
        self.assertEqual(params.resolve_pagination({'page': '-1', 'limit': '10'}, 10), (-1, 10, -20))

        # Negative limit: the default
        self.assertEqual(params.resolve_pagination({'page': '2', 'limit': '-1'}, 10), (2, 10, 10))
        self.assertEqual(params.resolve_pagination({'limit': '-50'}, 15), (1, 15, 0))

    def test_sort_tokens(self):
        self.assertEqual(params.sort_tokens({'sort': '-price,name'}, '-createdAt'), ['-price', 'name'])
        self.assertEqual(params.sort_tokens({'sort': ' a , ,-b '}, '-createdAt'), ['a', '-b'])
        self.assertEqual(params.sort_tokens({}, '-createdAt'), ['-createdAt'])
        self.assertEqual(params.sort_tokens({'sort': ''}, 'a -b'), ['a', '-b'])
        self.assertEqual(params.sort_tokens({'sort': ['a', '-b']}, ''), ['a', '-b'])

    def test_sort_mapping(self):
        mapping = params.sort_mapping(['a', '-b'])
        self.assertEqual(mapping, OrderedDict([('a', 1), ('b', -1)]))
        self.assertEqual(list(mapping), ['a', 'b'])

        mapping = params.sort_mapping(['-b', 'a'])
        self.assertEqual(list(mapping), ['b', 'a'])

    def test_search_conditions(self):
        self.assertEqual(params.search_conditions(['name', 'brand.name'], 'phone'), [
            {'name': {'$regex': 'phone', '$options': 'i'}},
            {'brand.name': {'$regex': 'phone', '$options': 'i'}},
        ])
        self.assertEqual(params.search_conditions([], 'phone'), [])

        # Metacharacters are escaped: a literal match
        condition, = params.search_conditions(['name'], '100%.5*')
        pattern = condition['name']['$regex']
        self.assertTrue(re.search(pattern, 'Discount 100%.5*'))
        self.assertFalse(re.search(pattern, 'Discount 100%x5'))


class QueryStringTest(unittest.TestCase):
    """ Test query string decoding """

    def test_parse_query_string(self):
        self.assertEqual(
            parse_query_string('?search=phone&category=electronics&price[gte]=500&price[lte]=1000'
                               '&sort=-price,name&page=2&limit=20'),
            {'search': 'phone', 'category': 'electronics', 'price': {'gte': '500', 'lte': '1000'},
             'sort': '-price,name', 'page': '2', 'limit': '20'}
        )

        # Percent-decoding, `+`, blank values
        self.assertEqual(parse_query_string('search=smart+phone%21&name='),
                         {'search': 'smart phone!', 'name': ''})

        # Arrays
        self.assertEqual(parse_query_string('tags[]=a&tags[]=b&id=1&id=2'),
                         {'tags': ['a', 'b'], 'id': ['1', '2']})

        # Deep nesting
        self.assertEqual(parse_query_string('a[b][c]=1&a[b][d]=2'),
                         {'a': {'b': {'c': '1', 'd': '2'}}})

    def test_nest_parameters(self):
        # Mapping
        self.assertEqual(nest_parameters({'price[gt]': '1', 'name': 'x'}),
                         {'price': {'gt': '1'}, 'name': 'x'})

        # Pairs
        self.assertEqual(nest_parameters([('price[in]', '1,2')]), {'price': {'in': '1,2'}})

        # A nested form wins over a scalar, in any order
        self.assertEqual(nest_parameters([('price', '1'), ('price[gt]', '2')]), {'price': {'gt': '2'}})
        self.assertEqual(nest_parameters([('price[gt]', '2'), ('price', '1')]), {'price': {'gt': '2'}})

        # Not a bracket
        self.assertEqual(nest_parameters([('[x]', '1'), ('a[b', '2')]), {'[x]': '1', 'a[b': '2'})
