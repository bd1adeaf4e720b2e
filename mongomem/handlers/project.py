"""
### Project Operation

In MongoDB terminology, *projection* is the process of selecting a subset of fields from a document.

Your documents have many fields, but you do not always need them all. Oftentimes, all you need is just a small
number of them. That's when you use this operation that *projects* some fields for you.

You do this by either listing the fields that you need (called *include mode*), or listing the fields that you
*do not* need (called *exclude mode*).

An example of a projection would look like this:

```python
users.find({}, projection=['username', 'name'])
```

#### Syntax

The Project operation supports the following syntaxes:

* Array syntax.

    Provide an array of field names to be included.
    All the rest will be excluded.

    ```python
    ['username', 'name']
    ```

* String syntax

    Give a list of field names, separated by whitespace.

    ```python
    'username name'
    ```

* Object syntax.

    Provide an object of field names mapped to either a `1` (include) or a `0` (exclude).

    ```python
    {'a': 1, 'b': 1}  # Include specific fields. All other fields are excluded
    {'a': 0, 'b': 0}  # Exclude specific fields. All other fields are included
    ```

    Note that you can't intermix the two: you either use all `1`s to specify the fields you want included,
    or use all `0`s to specify the fields you want excluded.
    The only exception is `_id`: it's included by default, and `{'_id': 0}` can be used in any mode.

    Any other value is an [expression](#aggregation-expressions) that computes the field:

    ```python
    {'username': 1, 'engagement': {'$add': ['$metrics.likes', '$metrics.comments']}}
    ```

    Computed fields imply the include mode. A computed value that is missing is left out of the result.

Dotted names work as well: `{'metrics.likes': 1}` gives `{'metrics': {'likes': 10}}`.

#### Fields Excluded by Force
Some fields are never given out by `find()`: this is something that back-end developers may have configured
with the `force_exclude` setting.
"""

from .base import MongoQueryHandlerBase
from ..document import ABSENT, set_path, without_path
from ..expressions import ExpressionEvaluator, ExpressionBase


class MongoProject(MongoQueryHandlerBase):
    """ MongoDB projection operator.

        Syntax in Python:

        * None: include all
        * { a: 1, b: 1 } - include only the given fields; exclude all the rest
        * { a: 0, b: 0 } - exclude the given fields; include all the rest
        * { a: 1, b: { $expr } } - include `a`, compute `b`
        * [ a, b, c ] - include only the given fields
        * 'a b c' - include only the given fields
    """

    query_object_section_name = 'project'

    #: Evaluator for computed fields
    _EXPRESSION_EVALUATOR_CLS = ExpressionEvaluator

    #: Projection mode: include all fields except the listed ones
    MODE_EXCLUDE = 0
    #: Projection mode: only include the listed fields
    MODE_INCLUDE = 1

    def __init__(self, collection_name, force_exclude=None):
        """ Init projection

        :param collection_name: Collection to work with
        :param force_exclude: list of fields that are always excluded.
            The user can't include them, no matter how hard they try.
        """
        super(MongoProject, self).__init__(collection_name)

        # Settings
        self.force_exclude = tuple(force_exclude or ())

        # On input

        #: Projection mode: MODE_INCLUDE or MODE_EXCLUDE
        self.mode = self.MODE_EXCLUDE

        #: Whether `_id` gets into the result
        self.id_included = True

        #: The parsed projection: { field name: 1 | 0 | ExpressionBase }
        self.fields = {}

    def input(self, projection):
        super(MongoProject, self).input(projection)
        self.mode, self.id_included, self.fields = self._input_process(projection)
        return self

    def _input_process(self, projection):
        """ Validate the projection, convert it into (mode, id_included, fields) """
        # Empty projection: include everything
        if not projection:
            return self.MODE_EXCLUDE, True, {}

        # String syntax, list syntax: include mode
        if isinstance(projection, str):
            projection = projection.split()
        if isinstance(projection, (list, tuple)):
            if not all(isinstance(name, str) and name for name in projection):
                self._raise('a list projection must only contain field names')
            projection = {name: 1 for name in projection}

        # Object syntax
        if not isinstance(projection, dict):
            self._raise('must be either an object, a list, or a string; {} provided', type(projection))

        evaluator = self._EXPRESSION_EVALUATOR_CLS()
        fields = {}
        id_included = None
        for name, value in projection.items():
            if not isinstance(name, str) or not name or name.startswith('$'):
                self._raise('invalid field name: {!r}', name)

            if self._is_flag(value):
                value = int(value)
                if name == '_id':
                    id_included = bool(value)
                    continue
            else:
                value = evaluator.compile(value)
            fields[name] = value

        # Mode: deduce it from the values, and make sure they're not intermixed
        modes = {self.MODE_INCLUDE if isinstance(v, ExpressionBase) else v
                 for v in fields.values()}
        if len(modes) > 1:
            self._raise('cannot mix inclusion and exclusion in the same projection ({} given)',
                        ', '.join(sorted(fields)))

        if modes:
            mode = modes.pop()
        else:
            # Only `_id` was given
            mode = self.MODE_INCLUDE if id_included else self.MODE_EXCLUDE

        # `_id` is in unless explicitly excluded
        if id_included is None:
            id_included = True

        return mode, id_included, fields

    @staticmethod
    def _is_flag(value):
        """ Is it an include/exclude flag, not an expression? """
        return isinstance(value, (int, bool)) and value in (0, 1)

    def is_input_empty(self):
        return self.mode == self.MODE_EXCLUDE and self.id_included and not self.fields

    @property
    def projection(self):
        """ Get the projection as a dict of { field: 1 | 0 }

            Computed fields are reported as `1`.
        """
        ret = {name: 1 if isinstance(v, ExpressionBase) else v
               for name, v in self.fields.items()}
        if not self.id_included:
            ret['_id'] = 0
        return ret

    def get_final_input_value(self):
        return self.projection

    def __contains__(self, name):
        """ Test whether a top-level field would be in the result """
        if name == '_id':
            return self.id_included
        if name in self.force_exclude:
            return False
        if self.mode == self.MODE_INCLUDE:
            return any(field == name or field.startswith(name + '.') for field in self.fields)
        return self.fields.get(name, 1) != 0

    def apply(self, documents):
        return [self.project_document(doc) for doc in documents]

    def project_document(self, doc):
        """ Project a single document

            The input document is never modified. The output may share nested values with it.

        :type doc: dict
        :rtype: dict
        """
        if self.mode == self.MODE_INCLUDE:
            ret = {}
            if self.id_included and '_id' in doc:
                ret['_id'] = doc['_id']

            for name, value in self.fields.items():
                # Computed field
                if isinstance(value, ExpressionBase):
                    computed = value.evaluate(doc)
                    if computed is not ABSENT:
                        set_path(ret, name, computed)
                # Included field
                else:
                    _copy_path(doc, ret, name.split('.'))
        else:
            ret = doc
            for name in self.fields:
                ret = without_path(ret, name)
            if not self.id_included:
                ret = without_path(ret, '_id')
            if ret is doc:
                ret = dict(doc)

        # Forced exclusions
        for name in self.force_exclude:
            ret = without_path(ret, name)

        return ret


def _copy_path(src, dst, parts):
    """ Copy a dotted path from `src` into `dst`, building the intermediate objects

        Arrays of sub-documents are projected element-wise, like MongoDB does.
    """
    head, rest = parts[0], parts[1:]
    if not isinstance(src, dict) or head not in src:
        return
    value = src[head]

    # The last segment: copy the value
    if not rest:
        dst[head] = value
        return

    # Nested object
    if isinstance(value, dict):
        sub = dst.get(head)
        if not isinstance(sub, dict):
            sub = dst[head] = {}
        _copy_path(value, sub, rest)
    # Array of sub-documents
    elif isinstance(value, list):
        items = [item for item in value if isinstance(item, dict)]
        sub = dst.get(head)
        if not isinstance(sub, list) or len(sub) != len(items):
            sub = dst[head] = [{} for _ in items]
        for item, sub_item in zip(items, sub):
            _copy_path(item, sub_item, rest)
