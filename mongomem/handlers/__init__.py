"""

If you know how to query documents in MongoDB, you can query your collections with the same language.
mongomem uses the familiar [MongoDB Query Operators](https://docs.mongodb.com/manual/reference/operator/query/)
language, on plain Python dicts kept in memory.

Query Object Syntax
-------------------

A Query Object is a dict that describes a `find()`: which documents to get, in which order, and which fields of them.
It is an object with the following properties:

* `filter`: [Filter Operation](#filter-operation) filters the documents, using your criteria
* `project`: [Project Operation](#project-operation) selects the fields to be returned
* `sort`: [Sort Operation](#sort-operation) determines the order of the results
* `skip`, `limit`: [Slicing](#slice-operation): paginates the results
* `count`: [Counting](#count-operation) counts the documents without returning them

An example Query Object is:

```python
dict(
  project=['username', 'name'],  # Only return these fields
  sort=['created_at-'],  # Newest first
  filter={
    'username': {'$regex': '^ana'},
    'created_at': {'$gte': datetime(2024, 1, 1)},
  },
  limit=100,  # Display 100 per page
  skip=10,  # Skip first 10 documents
)
```

Detailed syntax for every operation is provided in the relevant sections.

Updates are described by [Update Operators](#update-operation), and are not a part of the Query Object.
"""

from .project import MongoProject
from .sort import MongoSort
from .filter import MongoFilter
from .limit import MongoLimit
from .count import MongoCount
from .update import MongoUpdate

from .base import MongoQueryHandlerBase
from .filter import FilterExpressionBase, FilterBooleanExpression, FilterFieldExpression
