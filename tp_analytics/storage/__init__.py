from .cache import ActivityFileCache
