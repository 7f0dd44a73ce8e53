from .omdb import MetadataClient, OmdbClient
from .tmdb import TmdbClient
from .trakt import TraktClient

__all__ = ["MetadataClient", "OmdbClient", "TmdbClient", "TraktClient"]
