from docquery import Collection, CollectionSettingsDict, AggregationPipeline
from docquery.exc import InvalidQueryError, InvalidColumnError, DisabledError

from . import models
from .util import DbTestCase, TestQueryStringsMixin


class PipelineTest(TestQueryStringsMixin, DbTestCase):
    """ Test Collection.aggregate() """

    async def test_match_sort_slice(self):
        products = Collection(models.Product, self.ssn)

        docs = await products.aggregate([
            {'$match': {'category': 'electronics'}},
            {'$sort': {'price': -1}},
            {'$skip': 1},
            {'$limit': 2},
        ])
        self.assertEqual([d['name'] for d in docs], ['Tablet', 'Smartphone X'])

        # Documents are dicts of columns
        self.assertEqual(list(docs[0]), ['id', 'name', 'description', 'category', 'price', 'in_stock', 'createdAt', 'brand_id'])
        self.assertEqual(docs[0]['price'], 1000)
        self.assertIs(docs[0]['in_stock'], True)

        # Empty pipeline
        docs = await products.aggregate([])
        self.assertEqual(len(docs), 8 + models.N_CABLES)

    async def test_stage_order(self):
        products = Collection(models.Product, self.ssn)

        # $match after $limit: matches within the window
        docs = await products.aggregate([
            {'$sort': {'price': -1}},
            {'$limit': 3},
            {'$match': {'in_stock': True}},
        ])
        self.assertEqual([d['name'] for d in docs], ['Tablet', 'Smartphone X'])

        # $sort after $limit: sorts the window
        docs = await products.aggregate([
            {'$sort': {'price': -1}},
            {'$limit': 3},
            {'$sort': {'price': 1}},
        ])
        self.assertEqual([d['name'] for d in docs], ['Smartphone X', 'Tablet', 'Laptop Pro'])

        # $skip after $limit
        docs = await products.aggregate([
            {'$match': {'category': 'cables'}},
            {'$sort': {'price': 1}},
            {'$limit': 10},
            {'$skip': 5},
        ])
        self.assertEqual([d['price'] for d in docs], [6, 7, 8, 9, 10])

        # $skip + $skip, $limit + $limit
        docs = await products.aggregate([
            {'$match': {'category': 'cables'}},
            {'$sort': {'price': 1}},
            {'$skip': 2},
            {'$skip': 3},
            {'$limit': 4},
            {'$limit': 2},
        ])
        self.assertEqual([d['price'] for d in docs], [6, 7])

        # Negative values are ignored
        docs = await products.aggregate([
            {'$match': {'category': 'cables'}},
            {'$skip': -20},
            {'$limit': -1},
        ])
        self.assertEqual(len(docs), models.N_CABLES)

        # The compiled statement
        pipeline = AggregationPipeline(products, [
            {'$sort': {'price': -1}},
            {'$limit': 3},
            {'$match': {'in_stock': True}},
        ]).compile()
        self.assertQuery(pipeline.statement(),
                         'WHERE products.id IN (SELECT products.id',
                         'LIMIT 3',
                         'products.in_stock = 1')

    async def test_count(self):
        products = Collection(models.Product, self.ssn)

        docs = await products.aggregate([{'$match': {'category': 'cables'}}, {'$count': 'total'}])
        self.assertEqual(docs, [{'total': models.N_CABLES}])

        # Counts the window
        docs = await products.aggregate([
            {'$match': {'category': 'cables'}},
            {'$skip': 40},
            {'$limit': 20},
            {'$count': 'n'},
        ])
        self.assertEqual(docs, [{'n': 5}])

        # Nothing matched: no rows
        docs = await products.aggregate([{'$match': {'category': 'nope'}}, {'$count': 'total'}])
        self.assertEqual(docs, [])

        # $lookup does not break it
        docs = await products.aggregate([
            {'$match': {'_id': 1}},
            {'$lookup': {'from': 'reviews', 'localField': 'reviews', 'foreignField': '_id', 'as': 'reviews'}},
            {'$count': 'total'},
        ])
        self.assertEqual(docs, [{'total': 1}])

    async def test_lookup_relationship(self):
        products = Collection(models.Product, self.ssn)

        docs = await products.aggregate([
            {'$match': {'_id': {'$in': [1, 5]}}},
            {'$sort': {'_id': 1}},
            {'$lookup': {'from': 'reviews', 'localField': 'reviews', 'foreignField': '_id', 'as': 'reviews'}},
            {'$lookup': {'from': 'brand', 'localField': 'brand', 'foreignField': 'id', 'as': 'brand'}},
        ])
        d1, d5 = docs

        # Array relationship
        self.assertEqual([r['rating'] for r in d1['reviews']], [5, 4, 2])
        self.assertEqual(d5['reviews'], [])

        # Scalar relationship: a list as well
        self.assertEqual(d1['brand'], [{'id': 1, 'name': 'Acme', 'country': 'US'}])
        self.assertEqual(d5['brand'], [])

    async def test_lookup_table(self):
        products = Collection(models.Product, self.ssn)

        # Join by the primary key
        docs = await products.aggregate([
            {'$match': {'_id': {'$in': [1, 5]}}},
            {'$sort': {'_id': 1}},
            {'$lookup': {'from': 'brands', 'localField': 'brand_id', 'foreignField': '_id', 'as': 'maker'}},
        ])
        d1, d5 = docs
        self.assertEqual(d1['maker'], [{'id': 1, 'name': 'Acme', 'country': 'US'}])
        self.assertEqual(d5['maker'], [])

        # Join by a foreign key
        docs = await products.aggregate([
            {'$match': {'_id': {'$in': [1, 4]}}},
            {'$sort': {'_id': 1}},
            {'$lookup': {'from': 'reviews', 'localField': 'id', 'foreignField': 'product_id', 'as': 'feedback'}},
        ])
        d1, d4 = docs
        self.assertEqual(sorted(r['id'] for r in d1['feedback']), [1, 2, 3])
        self.assertEqual(d4['feedback'], [])

    async def test_project(self):
        products = Collection(models.Product, self.ssn)

        # Include
        docs = await products.aggregate([{'$match': {'_id': 1}}, {'$project': {'name': 1, 'price': 1}}])
        self.assertEqual(docs, [{'name': 'Smartphone X', 'price': 900}])

        # Exclude
        docs = await products.aggregate([{'$match': {'_id': 1}}, {'$project': {'description': 0, 'createdAt': 0}}])
        self.assertEqual(set(docs[0]), {'id', 'name', 'category', 'price', 'in_stock', 'brand_id'})

        # Looked-up fields
        docs = await products.aggregate([
            {'$match': {'_id': 1}},
            {'$lookup': {'from': 'brands', 'localField': 'brand_id', 'foreignField': '_id', 'as': 'maker'}},
            {'$project': {'name': 1, 'maker': 1}},
        ])
        self.assertEqual(docs, [{'name': 'Smartphone X', 'maker': [{'id': 1, 'name': 'Acme', 'country': 'US'}]}])

        # Mixed
        with self.assertRaises(InvalidQueryError):
            await products.aggregate([{'$project': {'name': 1, 'price': 0}}])

    async def test_errors(self):
        products = Collection(models.Product, self.ssn)

        # Stages
        with self.assertRaises(InvalidQueryError):
            await products.aggregate([{'$group': {}}])
        with self.assertRaises(InvalidQueryError):
            await products.aggregate([{'$match': {}, '$limit': 1}])
        with self.assertRaises(InvalidQueryError):
            await products.aggregate([{'$count': 'total'}, {'$limit': 1}])
        with self.assertRaises(InvalidQueryError):
            await products.aggregate([{'$count': ''}])
        with self.assertRaises(InvalidQueryError):
            await products.aggregate([{'$limit': '1'}])

        # Columns
        with self.assertRaises(InvalidColumnError):
            await products.aggregate([{'$match': {'nope': 1}}])
        with self.assertRaises(InvalidColumnError):
            await products.aggregate([{'$sort': {'nope': 1}}])

        # $lookup
        with self.assertRaises(InvalidQueryError):
            await products.aggregate([{'$lookup': {'from': 'reviews'}}])
        with self.assertRaises(InvalidQueryError):
            await products.aggregate([{'$lookup': {'from': 'nope', 'localField': 'id', 'foreignField': '_id', 'as': 'x'}}])
        with self.assertRaises(InvalidQueryError):
            await products.aggregate([{'$lookup': {'from': 'reviews', 'localField': 'reviews', 'foreignField': 'rating', 'as': 'x'}}])
        with self.assertRaises(InvalidColumnError):
            await products.aggregate([{'$lookup': {'from': 'brands', 'localField': 'nope', 'foreignField': '_id', 'as': 'x'}}])
        with self.assertRaises(InvalidColumnError):
            await products.aggregate([{'$lookup': {'from': 'brands', 'localField': 'brand_id', 'foreignField': 'nope', 'as': 'x'}}])

    async def test_settings(self):
        products = Collection(models.Product, self.ssn, CollectionSettingsDict(
            max_items=3,
            force_filter={'category': 'cables'},
            banned_relations=['reviews'],
        ))

        docs = await products.aggregate([{'$sort': {'price': 1}}])
        self.assertEqual([d['price'] for d in docs], [1, 2, 3])

        docs = await products.aggregate([{'$sort': {'price': 1}}, {'$limit': 2}])
        self.assertEqual([d['price'] for d in docs], [1, 2])

        # force_filter can't be escaped
        docs = await products.aggregate([{'$match': {'category': 'electronics'}}])
        self.assertEqual(docs, [])

        # Counting is not limited
        docs = await products.aggregate([{'$count': 'total'}])
        self.assertEqual(docs, [{'total': models.N_CABLES}])

        # Banned relation
        with self.assertRaises(DisabledError):
            await products.aggregate([{'$lookup': {'from': 'reviews', 'localField': 'reviews', 'foreignField': '_id', 'as': 'reviews'}}])
        # Unknown relation is looked up as a column
        with self.assertRaises(InvalidColumnError):
            await products.aggregate([{'$lookup': {'from': 'reviews', 'localField': 'nope', 'foreignField': '_id', 'as': 'x'}}])
