"""
Request logging middleware for the reservation API.
"""
import logging
import time

from utils.mongo import log_api_request

logger = logging.getLogger(__name__)

# Booking request fields worth keeping in the request log; passenger details are left out.
SCOPE_FIELDS = ('train_id', 'route_id', 'seat_id')


class APILoggingMiddleware:
    """
    Writes one MongoDB document per request to the booking endpoints and the
    train search, with timing, scope ids and the resulting booking status.
    """

    LOGGED_PREFIXES = ('/api/bookings/', '/api/trains/search/')

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        if not request.path.startswith(self.LOGGED_PREFIXES):
            return self.get_response(request)

        started = time.monotonic()
        response = self.get_response(request)
        elapsed_ms = round((time.monotonic() - started) * 1000, 2)

        user = getattr(request, 'user', None)
        data = getattr(response, 'data', None)

        try:
            log_api_request(
                endpoint=request.path,
                method=request.method,
                user_id=user.id if user is not None and user.is_authenticated else None,
                request_params=self._request_params(request, response, data),
                response_status=response.status_code,
                execution_time_ms=elapsed_ms,
                results_count=self._results_count(data),
            )
        except Exception:
            # Request logging must never change the response.
            logger.exception("Error logging API request to %s", request.path)

        return response

    @staticmethod
    def _request_params(request, response, data):
        if request.method == 'GET':
            return {k: v[0] if len(v) == 1 else v for k, v in request.GET.lists()}

        params = {}
        # The parsed body lives on the DRF request attached to the response.
        drf_request = (getattr(response, 'renderer_context', None) or {}).get('request')
        body = getattr(drf_request, 'data', None)
        if isinstance(body, dict):
            params = {k: body[k] for k in SCOPE_FIELDS if k in body}
        if isinstance(data, dict) and 'status' in data:
            params['booking_status'] = data['status']
        return params

    @staticmethod
    def _results_count(data):
        if isinstance(data, dict) and isinstance(data.get('results'), list):
            return len(data['results'])
        if isinstance(data, list):
            return len(data)
        return None
