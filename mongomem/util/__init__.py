from .reusable import Reusable
from .settings_handler import MongoQuerySettingsHandler
from .settings_dict import CollectionSettingsDict
