from .backend import MemoryBackend, RestBackend
from .catalog import CatalogIndex
from .errors import BackendError, InvalidProviderError, NoPlayableSourceError, StaleResolutionDiscarded, WatchError
from .navigation import NavigationController
from .progress import ProgressTracker
from .resolver import SourceResolver
from .servers import ServerRegistry
from .session import PlaybackSession

__version__ = "0.1.0"
