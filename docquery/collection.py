import logging

from sqlalchemy import select, func

from .bag import ModelPropertyBags
from .handlers import DocFilter, DocLimit, DocPopulate
from .pipeline import AggregationPipeline
from .query import DocumentQuery, merge_conditions
from .settings import CollectionSettingsDict

logger = logging.getLogger(__name__)


class Collection:
    """ A model, queried like a MongoDB collection

        This is the entry point to the data: it makes queries, counts rows, and runs aggregation pipelines.

        Example:

            ```python
            products = Collection(models.Product, ssn)

            await products.find({'price': {'$gte': 500}}).sort('-price').limit(10)
            await products.count_documents({'category': 'electronics'})
            await products.aggregate([
                {'$match': {'category': 'electronics'}},
                {'$sort': {'price': -1}},
                {'$limit': 10},
            ])
            ```
    """

    def __init__(self, model, ssn, settings=None):
        """ Init a collection

        :param model: SqlAlchemy model
        :type model: sqlalchemy.orm.DeclarativeMeta
        :param ssn: The session to run queries with
        :type ssn: sqlalchemy.ext.asyncio.AsyncSession
        :param settings: Collection settings
        :type settings: dict | CollectionSettingsDict | None
        """
        self.model = model
        self.ssn = ssn
        self.settings = CollectionSettingsDict(**(settings or {}))
        self.bags = ModelPropertyBags.for_model(model)

    def __repr__(self):
        return 'Collection({})'.format(self.model.__name__)

    # region Handlers

    def filter_handler(self, conditions) -> DocFilter:
        """ Get a filter for the predicate, with `force_filter` applied """
        conditions = merge_conditions(self.settings['force_filter'], conditions)
        return DocFilter(self.model, self.bags).input(conditions)

    def limit_handler(self, skip, limit) -> DocLimit:
        """ Get a slice, with `max_items` applied """
        return DocLimit(self.model, self.bags, max_items=self.settings['max_items']).input(skip, limit)

    def populate_handler(self, spec) -> DocPopulate:
        """ Get a population, with `allowed_relations` and `banned_relations` applied """
        return DocPopulate(self.model, self.bags,
                           allowed_relations=self.settings['allowed_relations'],
                           banned_relations=self.settings['banned_relations']).input(spec)

    # endregion

    def find(self, conditions=None) -> DocumentQuery:
        """ Start a query """
        return DocumentQuery(self, conditions)

    async def count_documents(self, conditions=None) -> int:
        """ Count the rows that match the predicate """
        stmt = select(func.count()).select_from(self.model)
        stmt = self.filter_handler(conditions).alter_query(stmt)
        logger.debug('Counting %s: %s', self.model.__name__, stmt)
        return (await self.ssn.execute(stmt)).scalar_one()

    async def aggregate(self, pipeline) -> list:
        """ Run an aggregation pipeline, get a list of dicts """
        return await AggregationPipeline(self, pipeline).execute()

    async def fetch_all(self, stmt) -> list:
        """ Execute a statement that selects model instances """
        logger.debug('Querying %s: %s', self.model.__name__, stmt)
        result = await self.ssn.execute(stmt)
        return list(result.scalars().unique().all())
