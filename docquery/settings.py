from typing import Iterable, Mapping


class CollectionSettingsDict(dict):
    """ Collection settings container.

        Is used for nice autocompletion and documentation purposes only! :)

        The keys are plain kwargs names that Collection feeds to its handlers.
        Example:

            ```python
            from docquery import Collection, CollectionSettingsDict

            products = Collection(models.Product, ssn, CollectionSettingsDict(
                # never give out more than 100 rows
                max_items=100,
                # hide archived products from everyone
                force_filter={'archived': False},
                # can only populate the following relations
                allowed_relations=('category', 'reviews'),
            ))
            ```
    """

    def __init__(self,
                 # --- limit
                 max_items: int = None,
                 # --- filter
                 force_filter: Mapping = None,
                 # --- populate & $lookup
                 allowed_relations: Iterable[str] = None,
                 banned_relations: Iterable[str] = None,
                 ):
        """
        Args:
            max_items (int | None): (for: limit)
                The maximum number of items that can be loaded with a single query.
                The user can never go any higher than that; the value is forced onto every query,
                including aggregation pipelines.
            force_filter (dict | None): (for: filter)
                A predicate that is ANDed to every find(), count_documents() and aggregate().
                Use it to hide rows the API user must never see.
            allowed_relations (list[str] | None): (for: populate)
                An explicit list of relationships that can be populated or looked up.
                When `None`, every relationship is allowed.
            banned_relations (list[str] | None): (for: populate)
                A list of relationships that cannot be populated or looked up.
        """
        super(CollectionSettingsDict, self).__init__(
            max_items=max_items,
            force_filter=force_filter,
            allowed_relations=allowed_relations,
            banned_relations=banned_relations,
        )
