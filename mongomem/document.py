"""
Documents are plain Python dicts. This module holds everything the engine needs to know about them:

* `ABSENT`, the marker for a field that is not there (as opposed to a field that holds `None`)
* dotted paths: `get_path()`, `set_path()`, `unset_path()`
* the closed set of value kinds (`ValueKind`), and how values of these kinds compare:
  `values_equal()`, `compare_values()`, `sort_key()`, `freeze()`
* `_id` generation

Comparison rules, in short:

* Booleans are a kind of their own: `True` never equals `1`
* Ordering comparisons ($gt & friends) only work within one kind; `TypeMismatchError` otherwise
* Sorting never fails: kinds are ordered the way MongoDB orders BSON types
* Timestamps are `datetime` objects; naive ones are taken to be in UTC
"""

import itertools
import numbers
import operator
import os
import random
import time
from datetime import datetime, timezone
from enum import Enum

from .exc import TypeMismatchError


class _ABSENT_TYPE:
    """ A falsy marker for a field that is not present in a document """
    def __repr__(self):
        return '<absent>'
    def __bool__(self):
        return False


ABSENT = _ABSENT_TYPE()  # A falsy marker: path lookup found nothing


class ValueKind(Enum):
    """ Kinds of values a document field may hold """
    NULL = 'null'  # `None`, and absent fields
    NUMBER = 'number'
    STRING = 'string'
    OBJECT = 'object'
    ARRAY = 'array'
    BOOLEAN = 'boolean'
    TIMESTAMP = 'timestamp'
    OTHER = 'other'


# BSON sort order
_KIND_SORT_RANK = {
    ValueKind.NULL: 1,
    ValueKind.NUMBER: 2,
    ValueKind.STRING: 3,
    ValueKind.OBJECT: 4,
    ValueKind.ARRAY: 5,
    ValueKind.BOOLEAN: 8,
    ValueKind.TIMESTAMP: 9,
    ValueKind.OTHER: 10,
}

# Kinds that support $gt, $lt, etc
_ORDERABLE_KINDS = frozenset((ValueKind.NUMBER, ValueKind.STRING, ValueKind.BOOLEAN, ValueKind.TIMESTAMP))

_ORDERING_OPERATORS = {
    '$gt': operator.gt,
    '$gte': operator.ge,
    '$lt': operator.lt,
    '$lte': operator.le,
}


def is_number(value):
    return isinstance(value, numbers.Real) and not isinstance(value, bool)


def is_array(value):
    return isinstance(value, (list, tuple))


def kind_of(value) -> ValueKind:
    """ Classify a value """
    if value is None or value is ABSENT:
        return ValueKind.NULL
    # bool before numbers: bool is a subclass of int
    if isinstance(value, bool):
        return ValueKind.BOOLEAN
    if is_number(value):
        return ValueKind.NUMBER
    if isinstance(value, str):
        return ValueKind.STRING
    if isinstance(value, datetime):
        return ValueKind.TIMESTAMP
    if isinstance(value, dict):
        return ValueKind.OBJECT
    if is_array(value):
        return ValueKind.ARRAY
    return ValueKind.OTHER


def as_utc(dt: datetime) -> datetime:
    """ Bring a timestamp to UTC. Naive timestamps are assumed to be in UTC already. """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


# region Paths

def get_path(doc, path: str):
    """ Get a value by a dotted path

        Traversal rules:
        * dict: by key
        * list + numeric segment: by index
        * list + any other segment: collect the values from every sub-document, flattening arrays one level.
          Absent when no sub-document has the field.
        * anything else: the value is absent

        :return: the value, or ABSENT
    """
    return _get_path(doc, path.split('.'))


def _get_path(cur, parts):
    for i, part in enumerate(parts):
        if isinstance(cur, dict):
            cur = cur.get(part, ABSENT)
            if cur is ABSENT:
                return ABSENT
        elif isinstance(cur, list):
            if part.isdigit():
                index = int(part)
                if index >= len(cur):
                    return ABSENT
                cur = cur[index]
            else:
                # Array of sub-documents: collect the values, arrays flattened one level
                rest = parts[i:]
                values = []
                for item in cur:
                    if not isinstance(item, dict):
                        continue
                    value = _get_path(item, rest)
                    if value is ABSENT:
                        continue
                    if is_array(value):
                        values.extend(value)
                    else:
                        values.append(value)
                return values if values else ABSENT
        else:
            return ABSENT
    return cur


def set_path(doc: dict, path: str, value):
    """ Set a value by a dotted path, creating intermediate objects. Modifies `doc` in place.

        :raises TypeMismatchError: an intermediate value is neither an object nor an array
    """
    parts = path.split('.')
    cur = doc
    for part in parts[:-1]:
        if isinstance(cur, dict):
            if not isinstance(cur.get(part), (dict, list)):
                if part in cur and cur[part] is not None:
                    raise TypeMismatchError('$set', cur[part], path)
                cur[part] = {}
            cur = cur[part]
        elif isinstance(cur, list) and part.isdigit() and int(part) < len(cur):
            cur = cur[int(part)]
        else:
            raise TypeMismatchError('$set', cur, path)

    last = parts[-1]
    if isinstance(cur, dict):
        cur[last] = value
    elif isinstance(cur, list) and last.isdigit() and int(last) < len(cur):
        cur[int(last)] = value
    else:
        raise TypeMismatchError('$set', cur, path)


def unset_path(doc: dict, path: str):
    """ Remove a field by a dotted path. Modifies `doc` in place. Missing paths are ignored. """
    *parents, last = path.split('.')
    cur = _get_path(doc, parents) if parents else doc
    if isinstance(cur, dict):
        cur.pop(last, None)


def with_path(doc: dict, path: str, value) -> dict:
    """ Get a copy of `doc` with a value set by a dotted path. `doc` itself is not modified.

        Only the objects along the path are copied. Intermediate values that are not objects are replaced with one.
    """
    head, _, rest = path.partition('.')
    if not rest:
        return {**doc, head: value}
    sub = doc.get(head)
    return {**doc, head: with_path(sub if isinstance(sub, dict) else {}, rest, value)}


def without_path(doc: dict, path: str) -> dict:
    """ Get a copy of `doc` without the field at a dotted path. `doc` itself is not modified.

        Only the objects along the path are copied; if the path is not there, `doc` itself is returned.
        Arrays of sub-documents lose the field in every element.
    """
    return _without_path(doc, path.split('.'))


def _without_path(doc, parts):
    head, rest = parts[0], parts[1:]
    if not isinstance(doc, dict) or head not in doc:
        return doc

    if not rest:
        return {k: v for k, v in doc.items() if k != head}

    value = doc[head]
    if isinstance(value, list):
        new_value = [_without_path(item, rest) for item in value]
        changed = any(a is not b for a, b in zip(new_value, value))
    else:
        new_value = _without_path(value, rest)
        changed = new_value is not value

    if not changed:
        return doc
    return {**doc, head: new_value}

# endregion


# region Comparison

def values_equal(a, b) -> bool:
    """ Test two values for equality

        Unlike `==`, it tells booleans from numbers, and compares timestamps with and without tzinfo
    """
    ka, kb = kind_of(a), kind_of(b)
    if ka != kb:
        return False
    if ka is ValueKind.NULL:
        return (a is ABSENT) == (b is ABSENT)
    if ka is ValueKind.TIMESTAMP:
        return as_utc(a) == as_utc(b)
    if ka is ValueKind.ARRAY:
        return len(a) == len(b) and all(values_equal(x, y) for x, y in zip(a, b))
    if ka is ValueKind.OBJECT:
        return a.keys() == b.keys() and all(values_equal(v, b[k]) for k, v in a.items())
    return a == b


def compare_values(operator_str: str, left, right) -> bool:
    """ Apply an ordering operator: $gt, $gte, $lt, $lte

        A null or absent operand never satisfies an ordering comparison.

        :raises TypeMismatchError: the operands are of different kinds, or not orderable
    """
    if left is None or left is ABSENT or right is None or right is ABSENT:
        return False

    kl, kr = kind_of(left), kind_of(right)
    if kl != kr or kl not in _ORDERABLE_KINDS:
        raise TypeMismatchError(operator_str, left, right)

    if kl is ValueKind.TIMESTAMP:
        left, right = as_utc(left), as_utc(right)
    return _ORDERING_OPERATORS[operator_str](left, right)


def sort_key(value):
    """ Get a key for sorting values of any kinds together

        Values of different kinds are ordered: null < numbers < strings < objects < arrays < booleans < timestamps
    """
    kind = kind_of(value)
    rank = _KIND_SORT_RANK[kind]
    if kind is ValueKind.NULL:
        return (rank, 0)
    if kind is ValueKind.TIMESTAMP:
        return (rank, as_utc(value))
    if kind is ValueKind.OBJECT:
        return (rank, tuple((k, sort_key(v)) for k, v in value.items()))
    if kind is ValueKind.ARRAY:
        return (rank, tuple(sort_key(v) for v in value))
    if kind is ValueKind.OTHER:
        return (rank, repr(value))
    return (rank, value)


def freeze(value):
    """ Make a hashable key out of a value, consistent with values_equal()

        Used to group documents, and to collect unique values.
        Absent values freeze the same way as `None`.
    """
    kind = kind_of(value)
    if kind is ValueKind.NULL:
        return (kind,)
    if kind is ValueKind.TIMESTAMP:
        return (kind, as_utc(value))
    if kind is ValueKind.OBJECT:
        return (kind, tuple(sorted((k, freeze(v)) for k, v in value.items())))
    if kind is ValueKind.ARRAY:
        return (kind, tuple(freeze(v) for v in value))
    return (kind, value)


def is_truthy(value) -> bool:
    """ MongoDB truthiness: false, null, absent and zero are false; everything else is true """
    if value is None or value is ABSENT or value is False:
        return False
    if is_number(value):
        return value != 0
    return True

# endregion


# region Identifiers

_id_process_unique = os.urandom(5).hex()
_id_counter = itertools.count(random.randint(0, 0xFFFFFF))


def generate_id() -> str:
    """ Generate a 24-char hex string shaped like a MongoDB ObjectId: timestamp, process-unique part, counter """
    return '{:08x}{}{:06x}'.format(int(time.time()) & 0xFFFFFFFF,
                                    _id_process_unique,
                                    next(_id_counter) & 0xFFFFFF)

# endregion
