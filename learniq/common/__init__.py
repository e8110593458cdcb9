"""
Common Components for LearnIQ

Infrastructure shared by the learning and gamification packages:
logging, error handling, rate limiting, caching, serialization,
authentication dependencies and database session management.
"""

from learniq.common.logger import app_logger
