"""
### Sort Operation

Sorting determines the order of the results.

An example of a sort operation would look like this:

```python
posts.find({}, sort=[('metrics.likes', -1), ('created_at', -1)])
```

#### Syntax

* Object syntax.

    Field names mapped to the sort direction: `+1` for ascending, `-1` for descending.
    Python dicts preserve the order of their keys, and so does the sort.

    Example:

    ```python
    {'sort': {'a': +1, 'b': -1}}
    ```

* List of pairs syntax.

    ```python
    {'sort': [('a', +1), ('b', -1)]}
    ```

* Array syntax.

    List of field names, optionally suffixed by the sort direction: `-` for descending, `+` for ascending.
    The default is `+`.

    Example:

    ```python
    {'sort': ['a+', 'b-', 'c']}  # -> a ASC, b DESC, c ASC
    ```

* String syntax

    List of fields, with optional `+` / `-`, separated by whitespace.

    Example:

    ```python
    {'sort': 'a+ b- c'}
    ```

The sort is stable: documents that compare equal on every key keep their original order.
Values of different kinds never fail to compare: they are ordered like MongoDB does it,
null (or missing) < numbers < strings < objects < arrays < booleans < timestamps.
"""

from collections import OrderedDict

from .base import MongoQueryHandlerBase
from ..document import get_path, sort_key


class MongoSort(MongoQueryHandlerBase):
    """ MongoDB sorting

        * None: no sorting
        * { a: +1, b: -1 }
        * [ ('a', +1), ('b', -1) ]
        * [ 'a+', 'b-', 'c' ]  - array of strings '<field>[<+|->]'. default direction = +1
        * 'a+ b- c'
    """

    query_object_section_name = 'sort'

    def __init__(self, collection_name):
        # Parent
        super(MongoSort, self).__init__(collection_name)

        # On input
        #: OrderedDict() of a sort spec: {key: +1|-1}
        self.sort_spec = None

    def _input(self, spec):
        """ Convert any of the supported syntaxes into an OrderedDict """

        # Empty
        if not spec:
            spec = []

        # String syntax
        if isinstance(spec, str):
            # Split by whitespace and convert to a list
            spec = spec.split()

        # List
        if isinstance(spec, (list, tuple)):
            # Strings: convert "field[+-]" into pairs
            # Pairs: use as is
            pairs = []
            for v in spec:
                if isinstance(v, str) and v:
                    pairs.append([v[:-1], -1 if v[-1] == '-' else +1]
                                 if v[-1] in {'+', '-'}
                                 else [v, +1])
                elif isinstance(v, (list, tuple)) and len(v) == 2:
                    pairs.append(v)
                else:
                    self._raise('list items must be either strings, or (field, direction) pairs; {!r} provided', v)
            spec = OrderedDict(pairs)

        # Dict
        if isinstance(spec, dict):
            spec = OrderedDict(spec)
        else:
            self._raise('must be either a list, a string, or an object; {} provided', type(spec))

        # Validate fields
        if not all(isinstance(field, str) and field for field in spec.keys()):
            self._raise('field names must be non-empty strings')

        # Validate directions: +1 or -1
        if not all(not isinstance(dir, bool) and dir in {-1, +1} for field, dir in spec.items()):
            self._raise('direction can be either +1 or -1')

        return spec

    def input(self, sort_spec):
        super(MongoSort, self).input(sort_spec)
        self.sort_spec = self._input(sort_spec)
        return self

    def apply(self, documents):
        documents = list(documents)
        if not self.sort_spec:
            return documents  # short-circuit

        # Python's sort is stable, so a multi-key sort is a sequence of sorts, starting from the last key.
        # reverse=True keeps the stability as well.
        for name, d in reversed(self.sort_spec.items()):
            documents.sort(key=lambda doc: sort_key(get_path(doc, name)),
                           reverse=(d == -1))
        return documents

    def get_final_input_value(self):
        return [f'{name}{"-" if d == -1 else ""}'
                for name, d in self.sort_spec.items()]
