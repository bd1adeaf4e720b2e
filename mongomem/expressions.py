"""
### Aggregation Expressions

Expressions compute values from a document. They are used by the `$project`, `$addFields`
and `$group` pipeline stages, and by projections in `find()`.

Example:

```python
posts.aggregate([
    {'$project': {
        'text': 1,
        # computed field
        'engagement': {'$add': ['$metrics.likes', '$metrics.comments']},
    }},
])
```

#### Syntax

* `'$field'`, `'$nested.field'`: the value of a field. `'$$ROOT'` is the whole document.
* `{'$literal': value}`: the value as is, never interpreted.
* `{'name': <expression>, ...}`: an object with computed fields.
* `[<expression>, ...]`: an array of computed values.
* Any other value is a constant.
* `{'$operator': [<expression>, ...]}`: an operator applied to its arguments.
    An operator with a single argument may skip the list: `{'$hour': '$created_at'}`

#### Operators

* Arithmetic: `$add`, `$subtract`, `$multiply`, `$divide`, `$mod`.
    A `null` or missing operand gives `null`. A non-numeric operand raises `TypeMismatchError`.
    `$add` also adds milliseconds to a timestamp; `$subtract` of two timestamps gives milliseconds.
    Division by zero raises `DivisionByZeroError`: guard it with `$cond`, like this:

    ```python
    {'$cond': [{'$gt': ['$posts', 0]}, {'$divide': ['$likes', '$posts']}, 0]}
    ```

* Comparison: `$eq`, `$ne`, `$gt`, `$gte`, `$lt`, `$lte`.
    Same rules as the filter operators: values of different kinds can't be ordered (`TypeMismatchError`),
    and `null` never satisfies an ordering comparison.
* Boolean: `$and`, `$or`, `$not`. `false`, `null`, missing values and `0` are false; everything else is true.
* Conditional: `$cond: [if, then, else]` (or `{if:, then:, else:}`), `$ifNull: [value, replacement]`.
    Only the chosen branch is evaluated.
* Arrays and strings: `$size`, `$concat`.
* Dates: `$year`, `$month`, `$dayOfMonth`, `$hour`, `$minute`, `$second`, `$dayOfWeek` (1=Sunday).
    Always computed in UTC, so the result does not depend on the locale of the caller.
"""

import math
from datetime import datetime, timedelta

from .document import ABSENT, as_utc, is_array, is_number, is_truthy, values_equal, compare_values, get_path
from .exc import ValidationError, TypeMismatchError, DivisionByZeroError


def _is_null(value):
    return value is None or value is ABSENT


# region Expression Classes

class ExpressionBase:
    """ A parsed expression """

    __slots__ = ()

    def evaluate(self, doc):
        """ Compute the value of this expression for a document

        :type doc: dict
        :return: the value, or ABSENT
        """
        raise NotImplementedError()


class LiteralExpression(ExpressionBase):
    """ A constant """

    __slots__ = ('value',)

    def __init__(self, value):
        self.value = value

    def __repr__(self):
        return repr(self.value)

    def evaluate(self, doc):
        return self.value


class FieldPathExpression(ExpressionBase):
    """ A reference to a field: '$metrics.likes' """

    __slots__ = ('path',)

    def __init__(self, path):
        self.path = path

    def __repr__(self):
        return '$' + self.path

    def evaluate(self, doc):
        return get_path(doc, self.path)


class RootExpression(ExpressionBase):
    """ The whole document: '$$ROOT' """

    __slots__ = ()

    def __repr__(self):
        return '$$ROOT'

    def evaluate(self, doc):
        return doc


class ObjectExpression(ExpressionBase):
    """ An object with computed fields. Fields that evaluate to ABSENT are left out. """

    __slots__ = ('fields',)

    def __init__(self, fields):
        self.fields = fields  # type: dict[str, ExpressionBase]

    def __repr__(self):
        return repr(self.fields)

    def evaluate(self, doc):
        ret = {}
        for name, expression in self.fields.items():
            value = expression.evaluate(doc)
            if value is not ABSENT:
                ret[name] = value
        return ret


class ArrayExpression(ExpressionBase):
    """ An array of computed values. ABSENT values become `None`. """

    __slots__ = ('items',)

    def __init__(self, items):
        self.items = items  # type: list[ExpressionBase]

    def __repr__(self):
        return repr(self.items)

    def evaluate(self, doc):
        return [None if v is ABSENT else v
                for v in (item.evaluate(doc) for item in self.items)]


class OperatorExpression(ExpressionBase):
    """ An operator applied to a list of arguments: { $op: [arg, ...] } """

    __slots__ = ('operator_str', 'args')

    #: Number of arguments: an int, or a (min, max) tuple; max=None means "any"
    arity = (0, None)

    def __init__(self, operator_str, args):
        self.operator_str = operator_str
        self.args = args  # type: list[ExpressionBase]

    def __repr__(self):
        return '{{{}: {!r}}}'.format(self.operator_str, self.args)

    @classmethod
    def get_arity(cls, operator_str):
        return cls.arity

    @classmethod
    def validate_arity(cls, operator_str, n_args):
        """ Check the number of arguments

            :raises ValidationError
        """
        arity = cls.get_arity(operator_str)
        lo, hi = (arity, arity) if isinstance(arity, int) else arity
        if n_args < lo or (hi is not None and n_args > hi):
            expected = str(lo) if lo == hi else '{}..{}'.format(lo, '' if hi is None else hi)
            raise ValidationError('Expression: {} expects {} arguments, {} given'
                                  .format(operator_str, expected, n_args))

    def evaluate_args(self, doc):
        return [arg.evaluate(doc) for arg in self.args]


class ArithmeticExpression(OperatorExpression):
    """ $add, $subtract, $multiply, $divide, $mod """

    __slots__ = ()

    @classmethod
    def get_arity(cls, operator_str):
        return (0, None) if operator_str in ('$add', '$multiply') else 2

    def evaluate(self, doc):
        values = self.evaluate_args(doc)

        # null in, null out
        if any(_is_null(v) for v in values):
            return None

        # Only numbers and timestamps go beyond this point
        for v in values:
            if not is_number(v) and not isinstance(v, datetime):
                raise TypeMismatchError(self.operator_str, *values)

        return getattr(self, '_' + self.operator_str[1:])(values)

    def _add(self, values):
        dates = [v for v in values if isinstance(v, datetime)]
        numbers = [v for v in values if not isinstance(v, datetime)]
        if len(dates) > 1:
            raise TypeMismatchError(self.operator_str, *values)
        if dates:
            # timestamp + milliseconds
            return dates[0] + timedelta(milliseconds=sum(numbers))
        return sum(numbers)

    def _subtract(self, values):
        a, b = values
        if isinstance(a, datetime) and isinstance(b, datetime):
            # Difference in milliseconds
            return (as_utc(a) - as_utc(b)) / timedelta(milliseconds=1)
        if isinstance(a, datetime):
            return a - timedelta(milliseconds=b)
        if isinstance(b, datetime):
            raise TypeMismatchError(self.operator_str, *values)
        return a - b

    def _multiply(self, values):
        self._numbers_only(values)
        return math.prod(values)

    def _divide(self, values):
        self._numbers_only(values)
        a, b = values
        if b == 0:
            raise DivisionByZeroError(self.operator_str, a)
        return a / b

    def _mod(self, values):
        self._numbers_only(values)
        a, b = values
        if b == 0:
            raise DivisionByZeroError(self.operator_str, a)
        # The result has the sign of the dividend
        ret = math.fmod(a, b)
        return int(ret) if isinstance(a, int) and isinstance(b, int) else ret

    def _numbers_only(self, values):
        if not all(is_number(v) for v in values):
            raise TypeMismatchError(self.operator_str, *values)


class ComparisonExpression(OperatorExpression):
    """ $eq, $ne, $gt, $gte, $lt, $lte """

    __slots__ = ()

    arity = 2

    def evaluate(self, doc):
        a, b = self.evaluate_args(doc)
        if self.operator_str == '$eq':
            return values_equal(a, b)
        elif self.operator_str == '$ne':
            return not values_equal(a, b)
        else:
            return compare_values(self.operator_str, a, b)


class LogicalExpression(OperatorExpression):
    """ $and, $or, $not """

    __slots__ = ()

    @classmethod
    def get_arity(cls, operator_str):
        return 1 if operator_str == '$not' else (0, None)

    def evaluate(self, doc):
        # Lazy: stop at the first argument that decides the outcome
        if self.operator_str == '$and':
            return all(is_truthy(arg.evaluate(doc)) for arg in self.args)
        elif self.operator_str == '$or':
            return any(is_truthy(arg.evaluate(doc)) for arg in self.args)
        else:
            return not is_truthy(self.args[0].evaluate(doc))


class ConditionalExpression(OperatorExpression):
    """ $cond: [if, then, else]

        Only the chosen branch is evaluated.
    """

    __slots__ = ()

    arity = 3

    def evaluate(self, doc):
        test, then_expr, else_expr = self.args
        if is_truthy(test.evaluate(doc)):
            return then_expr.evaluate(doc)
        else:
            return else_expr.evaluate(doc)


class IfNullExpression(OperatorExpression):
    """ $ifNull: [value, ..., replacement]

        The first value that is neither null nor missing; the last argument otherwise.
    """

    __slots__ = ()

    arity = (2, None)

    def evaluate(self, doc):
        for arg in self.args[:-1]:
            value = arg.evaluate(doc)
            if not _is_null(value):
                return value
        return self.args[-1].evaluate(doc)


class DatePartExpression(OperatorExpression):
    """ $year, $month, $dayOfMonth, $hour, $minute, $second, $dayOfWeek

        Always in UTC.
    """

    __slots__ = ()

    arity = 1

    _parts = {
        '$year': lambda dt: dt.year,
        '$month': lambda dt: dt.month,
        '$dayOfMonth': lambda dt: dt.day,
        '$hour': lambda dt: dt.hour,
        '$minute': lambda dt: dt.minute,
        '$second': lambda dt: dt.second,
        # 1 = Sunday ... 7 = Saturday
        '$dayOfWeek': lambda dt: dt.isoweekday() % 7 + 1,
    }

    def evaluate(self, doc):
        value = self.args[0].evaluate(doc)
        if _is_null(value):
            return None
        if not isinstance(value, datetime):
            raise TypeMismatchError(self.operator_str, value)
        return self._parts[self.operator_str](as_utc(value))


class SizeExpression(OperatorExpression):
    """ $size: the number of elements in an array """

    __slots__ = ()

    arity = 1

    def evaluate(self, doc):
        value = self.args[0].evaluate(doc)
        if not is_array(value):
            raise TypeMismatchError(self.operator_str, value)
        return len(value)


class ConcatExpression(OperatorExpression):
    """ $concat: join strings together """

    __slots__ = ()

    def evaluate(self, doc):
        values = self.evaluate_args(doc)
        if any(_is_null(v) for v in values):
            return None
        if not all(isinstance(v, str) for v in values):
            raise TypeMismatchError(self.operator_str, *values)
        return ''.join(values)

# endregion


class ExpressionEvaluator:
    """ Parses aggregation expressions into expression objects

        Parsing happens once: compile() validates the whole expression, and fails on unknown operators
        before anything is evaluated. The result can then be evaluated against any number of documents.

        Example:

            expr = ExpressionEvaluator().compile({'$hour': '$created_at'})
            expr.evaluate(post)  #-> 13
    """

    # Operator => class
    # You can override them, if necessary
    _operators = {
        '$add': ArithmeticExpression,
        '$subtract': ArithmeticExpression,
        '$multiply': ArithmeticExpression,
        '$divide': ArithmeticExpression,
        '$mod': ArithmeticExpression,
        '$eq': ComparisonExpression,
        '$ne': ComparisonExpression,
        '$gt': ComparisonExpression,
        '$gte': ComparisonExpression,
        '$lt': ComparisonExpression,
        '$lte': ComparisonExpression,
        '$and': LogicalExpression,
        '$or': LogicalExpression,
        '$not': LogicalExpression,
        '$cond': ConditionalExpression,
        '$ifNull': IfNullExpression,
        '$size': SizeExpression,
        '$concat': ConcatExpression,
        **{op: DatePartExpression for op in DatePartExpression._parts},
    }

    _ROOT_VARIABLES = frozenset(('$$ROOT', '$$CURRENT'))

    def compile(self, expr):
        """ Parse an expression

        :param expr: The expression: a field reference, an operator object, an object, an array, or a constant
        :rtype: ExpressionBase
        :raises ValidationError: Invalid expression
        """
        # Field references
        if isinstance(expr, str) and expr.startswith('$'):
            if expr.startswith('$$'):
                if expr not in self._ROOT_VARIABLES:
                    raise ValidationError('Expression: unknown variable "{}"'.format(expr))
                return RootExpression()
            if len(expr) == 1 or '..' in expr or expr.endswith('.'):
                raise ValidationError('Expression: invalid field path "{}"'.format(expr))
            return FieldPathExpression(expr[1:])

        # Objects
        if isinstance(expr, dict):
            operator_keys = [k for k in expr.keys() if isinstance(k, str) and k.startswith('$')]
            if not operator_keys:
                return ObjectExpression({name: self.compile(v) for name, v in expr.items()})
            if len(expr) != 1:
                raise ValidationError('Expression: an operator object must have exactly one key, got {!r}'
                                      .format(list(expr.keys())))
            operator_str, args = next(iter(expr.items()))
            return self._compile_operator(operator_str, args)

        # Arrays
        if isinstance(expr, (list, tuple)):
            return ArrayExpression([self.compile(v) for v in expr])

        # Constants
        return LiteralExpression(expr)

    def _compile_operator(self, operator_str, args):
        """ Parse { $operator: args } """
        # $literal: never look inside
        if operator_str == '$literal':
            return LiteralExpression(args)

        # Lookup
        try:
            expression_cls = self._operators[operator_str]
        except KeyError:
            raise ValidationError('Expression: unsupported operator "{}"'.format(operator_str))

        # $cond has an object syntax as well
        if operator_str == '$cond' and isinstance(args, dict):
            if set(args.keys()) != {'if', 'then', 'else'}:
                raise ValidationError('Expression: $cond object must have exactly the keys: if, then, else')
            args = [args['if'], args['then'], args['else']]

        # Date parts have an object syntax: { date: <expression> }
        if expression_cls is DatePartExpression and isinstance(args, dict) and not self._is_operator_object(args):
            if set(args.keys()) - {'date', 'timezone'} or 'date' not in args:
                raise ValidationError('Expression: {} object must have the "date" key'.format(operator_str))
            if args.get('timezone', 'UTC') not in ('UTC', 'Z', '+00:00'):
                raise ValidationError('Expression: {} is always computed in UTC'.format(operator_str))
            args = args['date']

        # A single argument does not have to be wrapped into a list
        if not isinstance(args, (list, tuple)):
            args = [args]

        # Validate, recurse
        expression_cls.validate_arity(operator_str, len(args))
        return expression_cls(operator_str, [self.compile(arg) for arg in args])

    @staticmethod
    def _is_operator_object(value):
        return len(value) == 1 and next(iter(value.keys())).startswith('$')

    def evaluate(self, expr, doc):
        """ Parse an expression and evaluate it for a single document """
        return self.compile(expr).evaluate(doc)
