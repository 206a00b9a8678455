OPENAI_EMBEDDING_MODEL = "text-embedding-3-small"
LOCAL_EMBEDDING_MODEL = "sentence-transformers/all-MiniLM-L6-v2"  # fallback generator, different vector space
EMBEDDING_DIM = 1536
EMBEDDING_BATCH_SIZE = 100
EMBEDDING_MAX_CHARS = 8000

MEDIA_COLLECTION_NAME = "media_content"
PROFILE_COLLECTION_NAME = "user_preferences"

# cache namespaces, one key family per concern
CACHE_PROFILE_NS = "user_profile"
CACHE_RECOMMENDATIONS_NS = "recommendations"
CACHE_DISCOVER_NS = "discover"
CACHE_SEARCH_NS = "vector_search"

PROFILE_CACHE_TTL = 3600
RECOMMENDATIONS_CACHE_TTL = 3600
SEARCH_CACHE_TTL = 1800

