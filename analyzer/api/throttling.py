"""
API Throttling Classes

Custom throttle classes for analysis API rate limiting.
"""

from rest_framework.throttling import UserRateThrottle


class AnalysisStartThrottle(UserRateThrottle):
    """
    Throttle for starting analyses.

    Rate: 30 requests per hour per user (per IP for anonymous users).
    Applied to: POST /api/v1/analysis/
    """

    rate = '30/hour'
    scope = 'analysis_start'


class ProgressPollThrottle(UserRateThrottle):
    """
    Throttle for progress polling.

    Clients poll every couple of seconds while a run is in flight.
    Applied to: GET /api/v1/analysis/<session_id>/
    """

    rate = '1200/hour'
    scope = 'analysis_progress'
