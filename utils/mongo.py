"""
MongoDB utility functions for API request logs and the booking audit trail.

MongoDB is optional: when it is disabled or unreachable every helper logs
a warning once and turns into a no-op.
"""
import logging
from datetime import datetime

from pymongo import MongoClient
from pymongo.errors import ConnectionFailure, PyMongoError, ServerSelectionTimeoutError
from django.conf import settings

logger = logging.getLogger(__name__)

# MongoDB client singleton
_mongo_client = None
_mongo_db = None
_mongo_available = None


def get_mongo_db():
    """Get MongoDB database instance (singleton pattern)."""
    global _mongo_client, _mongo_db, _mongo_available

    if not getattr(settings, 'MONGODB_ENABLED', True):
        return None

    # If we already know MongoDB is unavailable, return None
    if _mongo_available is False:
        return None

    if _mongo_db is None:
        try:
            _mongo_client = MongoClient(
                settings.MONGODB_URI,
                serverSelectionTimeoutMS=3000,  # 3 second timeout
                connectTimeoutMS=3000
            )
            # Test connection
            _mongo_client.admin.command('ping')
            _mongo_db = _mongo_client[settings.MONGODB_NAME]
            _mongo_available = True

            _ensure_indexes(_mongo_db)
        except (ConnectionFailure, ServerSelectionTimeoutError) as e:
            logger.warning("MongoDB connection failed, request logging disabled: %s", e)
            _mongo_available = False
            return None
        except Exception as e:
            # Bad URI, auth failure on ping and the like.
            logger.warning("MongoDB misconfigured, request logging disabled: %s", e)
            _mongo_available = False
            return None

    return _mongo_db


def reset_mongo_state():
    """Forget the cached connection so the next call reconnects."""
    global _mongo_client, _mongo_db, _mongo_available
    _mongo_client = None
    _mongo_db = None
    _mongo_available = None


def _ensure_indexes(db):
    try:
        api_logs = db.api_logs
        api_logs.create_index([("timestamp", -1)])
        api_logs.create_index([("endpoint", 1), ("timestamp", -1)])
        api_logs.create_index([("user_id", 1), ("timestamp", -1)])

        booking_events = db.booking_events
        booking_events.create_index([("booking_id", 1), ("timestamp", 1)])
        booking_events.create_index([("event", 1), ("timestamp", -1)])
    except PyMongoError as e:
        logger.warning("Error creating MongoDB indexes: %s", e)


def log_api_request(endpoint, method, user_id, request_params,
                    response_status, execution_time_ms, results_count=None):
    """
    Log an API request to MongoDB.

    Args:
        endpoint: API endpoint path
        method: HTTP method (GET, POST, etc.)
        user_id: ID of the authenticated user
        request_params: Dictionary of request parameters
        response_status: HTTP response status code
        execution_time_ms: Execution time in milliseconds
        results_count: Number of results returned (optional)
    """
    db = get_mongo_db()
    if db is None:
        return

    log_entry = {
        "endpoint": endpoint,
        "method": method,
        "user_id": user_id,
        "request_params": request_params,
        "response_status": response_status,
        "execution_time_ms": execution_time_ms,
        "timestamp": datetime.utcnow()
    }

    if results_count is not None:
        log_entry["results_count"] = results_count

    try:
        db.api_logs.insert_one(log_entry)
    except Exception as e:
        logger.warning("Error logging API request to MongoDB: %s", e)


def log_booking_event(event, booking_id, **details):
    """
    Append one entry to the booking audit trail.

    Args:
        event: booking_confirmed, booking_queued or booking_cancelled
        booking_id: primary key of the booking
        details: extra fields stored as-is (pnr, queue, position, ...)
    """
    db = get_mongo_db()
    if db is None:
        return

    try:
        db.booking_events.insert_one({
            "event": event,
            "booking_id": booking_id,
            "details": details,
            "timestamp": datetime.utcnow(),
        })
    except Exception as e:
        logger.warning("Error logging booking event %s for %s: %s", event, booking_id, e)
