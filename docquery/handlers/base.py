from ..bag import ModelPropertyBags
from ..exc import InvalidColumnError


class DocQueryHandlerBase:
    """ Translates one part of a MongoDB-style query into SqlAlchemy

        A handler is created for a model, then given its input, then applied to a statement:

            DocSort(Product).input('-price').alter_query(select(Product))
    """

    #: The part of the query this handler is responsible for; shows up in error messages
    query_section_name = None

    def __init__(self, model, bags: ModelPropertyBags = None):
        """

        :param model: the model queried
        :type model: sqlalchemy.orm.DeclarativeMeta
        :param bags: bags to use instead of the model's own
        """
        self.model = model
        self.bags = bags or ModelPropertyBags.for_model(model)
        #: Names this handler accepts, in a CombinedBag()
        self.supported_bags = self._get_supported_bags()

    def _get_supported_bags(self):
        """ Which properties can be referred to

        :rtype: docquery.bag.CombinedBag | None
        """
        raise NotImplementedError()

    def validate_properties(self, prop_names):
        """ Make sure every name is known

        :raises InvalidColumnError
        """
        invalid = self.supported_bags.get_invalid_names(prop_names)
        if invalid:
            raise InvalidColumnError(self.bags.model_name, invalid.pop(), self.query_section_name)

    def input(self, value):
        """ Take the user's input, validate it

        :rtype: DocQueryHandlerBase
        :raises BaseDocQueryException
        """
        #: As given; not to be modified
        self.input_value = value
        return self

    def alter_query(self, stmt):
        """ Apply the input to a statement

        :type stmt: sqlalchemy.sql.Select
        :rtype: sqlalchemy.sql.Select
        """
        raise NotImplementedError()
