"""
Redis key templates. Keep these simple and documented.
"""

from app.core.config import settings

# Per-user sub-document, e.g. newscurator:users:<id>:newsCuration:config
USER_DOCUMENT_KEY: str = settings.REDIS_KEY_PREFIX + ":users:{user_id}:{collection}:{doc}"
# Chat history list the digest is appended to
USER_MESSAGES_KEY: str = settings.REDIS_KEY_PREFIX + ":users:{user_id}:messages"
# Sorted set of user ids scored by last activity (epoch seconds)
ACTIVE_USERS_KEY: str = settings.REDIS_KEY_PREFIX + ":active_users"
CRON_STATS_KEY: str = settings.REDIS_KEY_PREFIX + ":cron:newsCuration"

NEWS_COLLECTION: str = "newsCuration"
CONFIG_DOC: str = "config"
PROFILE_CACHE_DOC: str = "profileCache"
