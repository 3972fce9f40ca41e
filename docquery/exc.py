class BaseDocQueryException(AssertionError):
    """ Any error in the user's query. AssertionError, so that it's easy to turn into a 400 """


class InvalidQueryError(BaseDocQueryException):
    """ Invalid predicate, sort, or pipeline provided by the User """

    def __init__(self, err: str):
        super(InvalidQueryError, self).__init__('Query error: {err}'.format(err=err))


class DisabledError(InvalidQueryError):
    """ The relation is not allowed by the collection settings """


class InvalidColumnError(BaseDocQueryException):
    """ Query mentioned an unknown column """

    #: What it is that's unknown, for the message
    kind = 'column'

    def __init__(self, model: str, column_name: str, where: str):
        self.model = model
        self.column_name = column_name
        self.where = where

        super(InvalidColumnError, self).__init__(
            'Invalid {kind} "{column_name}" for "{model}" specified in {where}'
            .format(kind=self.kind, column_name=column_name, model=model, where=where)
        )


class InvalidRelationError(InvalidColumnError):
    """ Query mentioned an unknown relationship """
    kind = 'relation'
