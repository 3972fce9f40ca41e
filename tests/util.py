import logging
import unittest

from sqlalchemy import event
from sqlalchemy.dialects import sqlite

from . import models


def stmt2sql(stmt, *, literal: bool = False):
    """ Compile a statement into SQL text, SQLite dialect """
    return str(stmt.compile(dialect=sqlite.dialect(),
                            compile_kwargs={'literal_binds': literal}))


class TestQueryStringsMixin:
    """ Assertions on compiled SQL """

    def assertQuery(self, stmt, *expected_lines, literal: bool = True):
        """ Check that every expected piece is found in the SQL

            Whitespace is normalized, so pieces can be written on a single line.
            Trailing commas of a piece are ignored.

            :return: the SQL, for further checks
        """
        qs = stmt if isinstance(stmt, str) else stmt2sql(stmt, literal=literal)
        qs = ' '.join(qs.split())

        for piece in '\n'.join(expected_lines).splitlines():
            self.assertIn(piece.strip().rstrip(','), qs)
        return qs


class QueryCounter:
    """ Count the queries sent to the database

        with QueryCounter(engine) as counter:
            ...
        counter.n
    """

    def __init__(self, engine):
        """
        :type engine: sqlalchemy.ext.asyncio.AsyncEngine
        """
        # Events are only available on the sync engine
        self.engine = engine.sync_engine
        self.n = 0

    def _on_execute(self, **kw):
        self.n += 1

    def __enter__(self):
        event.listen(self.engine, 'after_cursor_execute', self._on_execute, named=True)
        return self

    def __exit__(self, *exc):
        event.remove(self.engine, 'after_cursor_execute', self._on_execute)
        return False


class DbTestCase(unittest.IsolatedAsyncioTestCase):
    """ A test case with a fresh database for every test """

    #: Set to True to see the SQL
    SQL_LOGGING = False

    @classmethod
    def setUpClass(cls):
        logging.getLogger('docquery').setLevel(logging.DEBUG)
        logging.getLogger('sqlalchemy.engine').setLevel(logging.INFO if cls.SQL_LOGGING else logging.ERROR)

    async def asyncSetUp(self):
        self.engine, self.Session = await models.get_working_db_for_tests()
        self.ssn = self.Session()

    async def asyncTearDown(self):
        await self.ssn.close()
        await self.engine.dispose()
