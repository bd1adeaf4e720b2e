import inspect
from functools import lru_cache

from ..exc import DisabledError


@lru_cache(100)
def handler_setting_defaults(handler_cls: type) -> dict:
    """ The settings a handler accepts: {kwarg name: default value}

        Every keyword argument of `__init__()` that has a default is a setting.
    """
    return {name: param.default
            for name, param in inspect.signature(handler_cls.__init__).parameters.items()
            if param.default is not param.empty
            and param.kind in (param.POSITIONAL_OR_KEYWORD, param.KEYWORD_ONLY)}


class MongoQuerySettingsHandler:
    """ Hands out collection settings to handlers

        Collection settings come as one flat dict: `max_items`, `force_filter`, `filter_enabled`, ...
        Every handler declares the settings it wants as keyword arguments of its `__init__()`.
        This object gives every handler the keys it has asked for, defaults filling the gaps.

        Two handlers may share a setting name: the `filter` of find() and the `$match` stage
        both take `force_filter` and `scalar_operators`, so they both get them.

        Whatever key was asked for by nobody is a typo: see raise_if_invalid_handler_settings()
    """

    def __init__(self, settings: dict):
        assert isinstance(settings, dict)

        #: The settings. Never modified.
        self._settings = settings

        #: Setting names accepted by at least one handler
        self._known_keys = set()

        #: Handlers that are turned off with `<name>_enabled=False`
        self._disabled = set()

    def get_settings(self, handler_name: str, handler_cls: type) -> dict:
        """ Get the kwargs for a handler's __init__()

        :param handler_name: Name of the handler, as used by `<name>_enabled`
        :param handler_cls: The handler class to analyze
        """
        enabled_key = '{}_enabled'.format(handler_name)
        self._known_keys.add(enabled_key)
        if not self._settings.get(enabled_key, True):
            self._disabled.add(handler_name)

        defaults = handler_setting_defaults(handler_cls)
        self._known_keys.update(defaults)
        return {key: self._settings.get(key, default) for key, default in defaults.items()}

    def is_handler_enabled(self, handler_name: str) -> bool:
        return handler_name not in self._disabled

    def raise_if_not_handler_enabled(self, collection_name: str, handler_name: str):
        """ Complain about a handler that's been turned off

        :raises DisabledError
        """
        if not self.is_handler_enabled(handler_name):
            raise DisabledError('Query handler "{}" is disabled for "{}"'
                                .format(handler_name, collection_name))

    def raise_if_invalid_handler_settings(self, owner):
        """ Complain about setting names no handler has asked for

            Call it after every handler has had its get_settings()

        :raises KeyError: unknown settings
        """
        unknown = set(self._settings) - self._known_keys
        if unknown:
            raise KeyError('Invalid settings were provided for {!r}: {}'
                           .format(owner, ','.join(sorted(unknown))))

    def __repr__(self):
        return '{}({!r})'.format(self.__class__.__name__, self._settings)
