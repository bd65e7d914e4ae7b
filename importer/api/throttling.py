"""
API throttling classes for the import endpoints.
"""

from rest_framework.throttling import UserRateThrottle


class ImportStartThrottle(UserRateThrottle):
    """
    Throttle for starting import jobs.

    Rate: 10 requests per hour per user.
    Applied to: POST /api/v1/imports/
    """

    rate = '10/hour'
    scope = 'import_start'


class ImportStatusThrottle(UserRateThrottle):
    """
    Throttle for polling and stopping import jobs.

    Rate: 600 requests per hour per user.
    Applied to: /api/v1/imports/<job_id>/...
    """

    rate = '600/hour'
    scope = 'import_status'
