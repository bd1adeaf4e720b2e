"""
### Count Operation

Give the number of matching documents instead of the documents themselves.

Example:

```python
MongoQuery('posts').query(filter={'hashtags': '#mongodb'}, count=1).end(posts)  #-> 2
```

`count=1` turns counting on; `0`, `False` or `None` leave it off.
A count ignores `sort`, `project`, `skip`, `limit`, and the `max_items` setting: it counts every match.
"""

from .base import MongoQueryHandlerBase

NoneType = type(None)


class MongoCount(MongoQueryHandlerBase):
    """ Count the documents

        Input: count=True
    """

    query_object_section_name = 'count'

    def __init__(self, collection_name):
        super(MongoCount, self).__init__(collection_name)

        # On input
        self.count = None

    def input_prepare_query_object(self, query_object):
        # Nothing but the filter matters to a count
        if query_object.get('count', False):
            for key in ('sort', 'project', 'skip', 'limit'):
                query_object.pop(key, None)
            # `max_items` is dropped by MongoLimit.input_prepare_query_object()
        return query_object

    def input(self, count=None):
        super(MongoCount, self).input(count)
        if not isinstance(count, (int, bool, NoneType)):
            self._raise('must be a boolean, or 0/1; {!r} given', count)

        self.count = bool(count)
        return self

    def apply(self, documents):
        """ Count the documents, if counting is on

        :rtype: int | list[dict]
        """
        if not self.count:
            return documents
        return len(documents)
