"""
DocQuery is a query builder that lets you query [SqlAlchemy](http://www.sqlalchemy.org/)
like a MongoDB database, straight from the query string of an HTTP request.

The main use case is the interaction with the UI:
every time the UI needs some *searching*, *filtering*, *sorting*, *pagination*, or to load some
*related objects*, you won't have to write a single line of repetitive code:

```python
params = parse_query_string(request.query_string)
# search=phone&category=electronics&price[gte]=500&sort=-price,name&page=2&limit=20

result = await QueryBuilder(Product.find(ssn), params) \\
    .search(['name']) \\
    .filter() \\
    .sort() \\
    .paginate() \\
    .populate('category') \\
    .execute_with_metadata()
```

When a plain query is not enough, switch to an aggregation pipeline with `.aggregate([...])`.
"""

# Exceptions that are used here and there
from .exc import *

# DocQuery needs a lot of information about the properties of your models.
# All this is handled by the following class:
from .bag import ModelPropertyBags, CombinedBag

# The handlers convert the MongoDB dialect into actual SqlAlchemy statements
from . import handlers

# The data engine: collections, queries, aggregation pipelines
from .collection import Collection
from .query import DocumentQuery
from .pipeline import AggregationPipeline
from .settings import CollectionSettingsDict

# The query builder: request parameters in, results out
from .builder import QueryBuilder
from .modes import SimpleMode, AggregationMode
from .querystring import parse_query_string, nest_parameters

# SqlAlchemy declarative mixin that defines .collection() and .find() on it
# That's just for your convenience.
from .sa import DocQueryBase
