from typing import Mapping

from sqlalchemy.ext.asyncio import AsyncSession

from .builder import QueryBuilder
from .collection import Collection
from .query import DocumentQuery


class DocQueryBase:
    """ Mixin for SqlAlchemy models that provides the .collection() method for convenience

        Example:

            ```python
            class Product(Base, DocQueryBase):
                ...

            await Product.find(ssn, {'category': 'electronics'}).sort('-price')
            await Product.query_builder(ssn, params).filter().sort().paginate().exec()
            ```
    """

    # Override this method in your subclass in order to be able to configure DocQuery on a per-model basis!
    @classmethod
    def _init_collection_settings(cls) -> dict:
        """ Get the collection settings for this model. Is only invoked once.

            Override this method in order to initialize collections the way you need.
            Or just use `docquery_configure()`.

            :rtype: CollectionSettingsDict | None
        """
        return None

    __settings_per_class_cache = {}

    @classmethod
    def _get_collection_settings(cls) -> dict:
        """ Get the collection settings for this model; initialize them only once """
        try:
            # Every model class has its own settings, and no one inherits them.
            # We could use model.__dict__ for this, but classes use an immutable `mappingproxy` instead.
            return cls.__settings_per_class_cache[cls]
        except KeyError:
            cls.__settings_per_class_cache[cls] = settings = cls._init_collection_settings()
            return settings

    @classmethod
    def docquery_configure(cls, settings: Mapping) -> None:
        """ Configure collections of this model, and make it permanent.

            This method is just a shortcut to do configuration the lazy way.
            A better way would be to override the _init_collection_settings() method.

            :param settings: a dict of settings. See CollectionSettingsDict
        """
        cls.__settings_per_class_cache[cls] = settings

    @classmethod
    def collection(cls, ssn: AsyncSession) -> Collection:
        """ Get a collection of this model, bound to a session """
        return Collection(cls, ssn, cls._get_collection_settings())

    @classmethod
    def find(cls, ssn: AsyncSession, conditions: Mapping = None) -> DocumentQuery:
        """ Start a query """
        return cls.collection(ssn).find(conditions)

    @classmethod
    def query_builder(cls, ssn: AsyncSession, params: Mapping) -> QueryBuilder:
        """ Start a QueryBuilder over all rows of this model

            :param params: Request parameters. See: parse_query_string()
        """
        return QueryBuilder(cls.find(ssn), params)
