"""
### Update Operation

Updates modify documents that match a filter.
An update object has exactly one operator:

* `{'$set': {field: value, ...}}`: set the fields to the given values.
    Dotted names work: intermediate objects are created as needed.
* `{'$inc': {field: number, ...}}`: increment numeric fields.
    A missing field is set to the increment. Incrementing anything but a number is a `TypeMismatchError`.

Example:

```python
posts.update_one({'_id': post_id}, {'$inc': {'metrics.likes': 1}})
```

`_id` can't be changed: it is immutable after insert.

Counters, like `metrics.likes`, should always be changed with `$inc`, never with `$set`:
increments are applied atomically with respect to other writers, and no update is lost.
"""

from copy import deepcopy

from .base import MongoQueryHandlerBase
from ..document import ABSENT, get_path, set_path, is_number
from ..exc import TypeMismatchError


class MongoUpdate(MongoQueryHandlerBase):
    """ MongoDB update operators

        * { $set: { a: 1, 'b.c': 'value' } }
        * { $inc: { 'metrics.likes': 1 } }
    """

    query_object_section_name = 'update'

    #: Supported operators
    OPERATORS = frozenset(('$set', '$inc'))

    def __init__(self, collection_name):
        super(MongoUpdate, self).__init__(collection_name)

        # On input
        self.operator = None
        self.fields = None

    def input(self, update):
        super(MongoUpdate, self).input(update)

        # Validate
        if not isinstance(update, dict) or not update:
            self._raise('must be a non-empty object')
        if not all(isinstance(k, str) and k.startswith('$') for k in update.keys()):
            self._raise('must only contain update operators, e.g. {{"$set": {{...}}}}; '
                        'whole-document replacement is not supported')
        if len(update) != 1:
            self._raise('exactly one operator per update is supported; {} given', ', '.join(sorted(update)))

        operator, fields = next(iter(update.items()))
        if operator not in self.OPERATORS:
            self._raise('unsupported operator "{}"', operator)
        if not isinstance(fields, dict) or not fields:
            self._raise('{} must be a non-empty object', operator)

        # Validate field names
        for name in fields:
            if not isinstance(name, str) or not name or name.startswith('$') or '..' in name:
                self._raise('{}: invalid field name {!r}', operator, name)
            if name == '_id' or name.startswith('_id.'):
                self._raise('{}: _id is immutable', operator)

        # $inc: numbers only
        if operator == '$inc':
            for name, value in fields.items():
                if not is_number(value):
                    self._raise('$inc: the increment for "{}" must be a number, {!r} given', name, value)

        # Done
        self.operator = operator
        self.fields = fields
        return self

    def apply(self, documents):
        return [self.update_document(doc) for doc in documents]

    def update_document(self, doc):
        """ Apply the update to a document

            The input document is never modified: a modified copy is returned.

        :type doc: dict
        :rtype: dict
        :raises TypeMismatchError: $inc on a non-numeric value, or a path through a scalar
        """
        doc = deepcopy(doc)

        if self.operator == '$set':
            for name, value in self.fields.items():
                set_path(doc, name, deepcopy(value))
        else:
            for name, value in self.fields.items():
                current = get_path(doc, name)
                if current is ABSENT:
                    set_path(doc, name, value)
                elif is_number(current):
                    set_path(doc, name, current + value)
                else:
                    raise TypeMismatchError('$inc', current, value)

        return doc
