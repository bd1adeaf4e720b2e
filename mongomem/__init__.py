"""
mongomem is an in-memory document store that you query like a MongoDB database.

Documents are plain Python dicts. Collections give you the familiar methods:
`insert_one()`, `find()`, `update_one()`, `delete_many()`, `aggregate()`, and friends.
Filters, projections, sorts, updates and aggregation pipelines are structured Python values,
written in the MongoDB query language:

```python
from mongomem import DocumentStore

store = DocumentStore()
posts = store.collection('posts')

posts.insert_many([
    {'text': 'Hello #mongodb', 'hashtags': ['#mongodb'], 'metrics': {'likes': 5, 'comments': 1}},
    {'text': '#spark & #mongodb', 'hashtags': ['#spark', '#mongodb']},
])

posts.find({'metrics.likes': {'$gte': 5}}, projection=['text']).to_list()

posts.aggregate([
    {'$unwind': '$hashtags'},
    {'$group': {'_id': '$hashtags', 'uses': {'$sum': 1}}},
    {'$sort': {'uses': -1}},
])
```

The store is thread-safe: reads work on point-in-time snapshots and never block,
writes to a collection are serialized, so `$inc` never loses an update.
"""

# Exceptions that are used here and there
from .exc import *

# Documents: the marker for missing fields, and the helpers that tell how values compare
from .document import ABSENT, ValueKind

# The heart of mongomem are the handlers:
# that's where your filters, projections, and sorts are parsed and applied
from . import handlers

# MongoQuery runs the Query Object of a find() through the handlers
from .query import MongoQuery

# Aggregation: expressions and pipelines
from .expressions import ExpressionEvaluator
from .pipeline import MongoPipeline

# The store, and its collections
from .store import DocumentStore, Snapshot
from .collection import Collection, Cursor

# Helpers
# Reusable query objects (so that you don't have to initialize them over and over again)
from .util import Reusable
# Settings object for collections
from .util import CollectionSettingsDict
