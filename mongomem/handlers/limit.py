"""
### Slice Operation

The Slice operation consists of two optional parts:

* `limit` would limit the number of items returned
* `skip` would shift the "window" a number of items

Together, these two elements implement pagination.

Example:

```python
users.find({}, sort='username', skip=200, limit=100)  # 100 items per page, third page
```

Values: can be a non-negative integer, or `None`.
`limit=None` means "no limit"; `limit=0` gives an empty result.
Negative values are rejected with a `ValidationError`.
"""

from .base import MongoQueryHandlerBase

NoneType = type(None)


class MongoLimit(MongoQueryHandlerBase):
    """ MongoDB limits and offsets

        Handles two keys:
        * 'limit': None, or int
        * 'skip': None, or int
    """

    query_object_section_name = 'limit'

    def __init__(self, collection_name, max_items=None):
        """ Init a limit

        :param collection_name: Collection to work with
        :param max_items: The maximum number of items that can be loaded with this query.
            The user can never go any higher than that, and this value is forced onto every query.
        """
        super(MongoLimit, self).__init__(collection_name)

        # Config
        self.max_items = max_items
        assert self.max_items is None or self.max_items > 0

        # On input
        self.skip = None
        self.limit = None

    def input_prepare_query_object(self, query_object):
        """ Pack `skip` and `limit` into one section: ('limit': (skip, limit))

            A count drops `max_items`: every match is counted. This object is a copy, so changing it is safe.
        """
        if 'skip' in query_object or 'limit' in query_object:
            pair = (query_object.pop('skip', None), query_object.pop('limit', None))
            if pair != (None, None):
                query_object['limit'] = pair

        if query_object.get('count', False):
            self.max_items = None

        return query_object

    def validate_value(self, name, value):
        """ Validate a skip or limit value

            :raises ValidationError
        """
        if isinstance(value, bool) or not isinstance(value, (int, NoneType)):
            self._raise('{} must be either an integer, or null', name)
        if value is not None and value < 0:
            self._raise('{} must not be negative, {} given', name, value)
        return value

    def input(self, skip=None, limit=None):
        # MongoQuery actually gives us a tuple (skip, limit)
        # Adapt.
        if isinstance(skip, tuple):
            skip, limit = skip

        # Super
        super(MongoLimit, self).input((skip, limit))

        # Validate
        skip = self.validate_value('skip', skip)
        limit = self.validate_value('limit', limit)

        # Max limit
        if self.max_items:
            limit = self.max_items if limit is None else min(self.max_items, limit)

        # Done
        self.skip = skip or None
        self.limit = limit
        return self

    def is_input_empty(self):
        return self.skip is None and self.limit is None

    def apply(self, documents):
        documents = list(documents)
        if self.skip:
            documents = documents[self.skip:]
        if self.limit is not None:
            documents = documents[:self.limit]
        return documents

    def get_final_input_value(self):
        return dict(skip=self.skip, limit=self.limit)
