"""
Analysis API Views

REST API endpoints for starting and following review analyses.

- POST /api/v1/analysis/                      - Start an analysis
- GET  /api/v1/analysis/<session_id>/         - Poll progress
- POST /api/v1/analysis/<session_id>/cancel/  - Cancel a running analysis
- POST /api/v1/analysis/cleanup/              - Delete old sessions (admin)

Start, progress and cancel are public; the browser session ties a
visitor to their analyses.
"""

import logging

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes, throttle_classes
from rest_framework.permissions import AllowAny, IsAdminUser
from rest_framework.response import Response
from drf_spectacular.utils import extend_schema, OpenApiParameter
from drf_spectacular.types import OpenApiTypes

from analyzer.api.throttling import AnalysisStartThrottle, ProgressPollThrottle
from analyzer.exceptions import InvalidProductUrlError, RecordNotFoundError
from analyzer.monitoring.error_classifier import USER_MESSAGES, ErrorType, handle_exception
from analyzer.services import sessions
from analyzer.services.sessions import SessionAlreadyFinishedError

logger = logging.getLogger(__name__)


def _user_session_key(request) -> str:
    """Browser session key, created on first use."""
    django_session = getattr(request, 'session', None)
    if django_session is None:
        return ''
    if not django_session.session_key:
        django_session.save()
        # Issue the cookie so repeat submissions map to the same key
        django_session.modified = True
    return django_session.session_key or ''


@extend_schema(
    summary='Start an analysis',
    description='Queue a review authenticity analysis for an Amazon product URL.',
    tags=['Analysis'],
    request={
        'application/json': {
            'type': 'object',
            'properties': {
                'product_url': {'type': 'string', 'description': 'Amazon product URL'},
            },
            'required': ['product_url'],
        }
    },
    responses={
        201: {
            'description': 'Analysis queued',
            'content': {
                'application/json': {
                    'example': {
                        'session_id': '3f2b6c1e-7a8d-4e59-9b0a-1c2d3e4f5a6b',
                        'status': 'pending',
                        'created': True,
                    }
                }
            },
        },
        400: {'description': 'Missing or invalid product URL'},
        503: {'description': 'Analysis could not be queued'},
    },
)
@api_view(['POST'])
@permission_classes([AllowAny])
@throttle_classes([AnalysisStartThrottle])
def start_analysis(request):
    """
    Start an analysis.

    Request body:
    {
        "product_url": "https://www.amazon.com/dp/B0TEST1234"
    }

    Repeated submissions of the same product from the same browser
    session within a few minutes return the running session.
    """
    product_url = (request.data.get('product_url') or '').strip()
    if not product_url:
        return Response(
            {'error': 'product_url is required'},
            status=status.HTTP_400_BAD_REQUEST
        )

    try:
        session, created = sessions.start_analysis(product_url, _user_session_key(request))
    except InvalidProductUrlError:
        return Response(
            {'error': USER_MESSAGES[ErrorType.INVALID_URL]},
            status=status.HTTP_400_BAD_REQUEST
        )
    except Exception as e:
        message = handle_exception(e, {'product_url': product_url})
        return Response(
            {'error': message},
            status=status.HTTP_503_SERVICE_UNAVAILABLE
        )

    return Response(
        {
            'session_id': str(session.id),
            'status': session.status,
            'created': created,
        },
        status=status.HTTP_201_CREATED if created else status.HTTP_200_OK
    )


@extend_schema(
    summary='Analysis progress',
    tags=['Analysis'],
    parameters=[
        OpenApiParameter(
            name='session_id',
            type=OpenApiTypes.UUID,
            location=OpenApiParameter.PATH,
            description='Analysis session id',
        ),
    ],
    responses={
        200: {
            'description': 'Current progress',
            'content': {
                'application/json': {
                    'example': {
                        'session_id': '3f2b6c1e-7a8d-4e59-9b0a-1c2d3e4f5a6b',
                        'status': 'processing',
                        'asin': 'B0TEST1234',
                        'current_step': 3,
                        'total_steps': 8,
                        'progress_percentage': 52.0,
                        'current_message': 'Gathering review information...',
                        'is_processing': True,
                        'polling_interval_ms': 2000,
                    }
                }
            },
        },
        404: {'description': 'Session not found'},
    },
)
@api_view(['GET'])
@permission_classes([AllowAny])
@throttle_classes([ProgressPollThrottle])
def analysis_progress(request, session_id):
    """
    Get analysis progress.

    Completed sessions include `result` and `redirect_url`; failed
    sessions include a user-facing `error`.
    """
    try:
        data = sessions.get_progress(session_id)
    except RecordNotFoundError:
        return Response(
            {'error': 'Analysis session not found'},
            status=status.HTTP_404_NOT_FOUND
        )

    return Response(data)


@extend_schema(
    summary='Cancel an analysis',
    tags=['Analysis'],
    request=None,
    responses={
        200: {'description': 'Analysis cancelled'},
        404: {'description': 'Session not found'},
        409: {'description': 'Session already completed or failed'},
    },
)
@api_view(['POST'])
@permission_classes([AllowAny])
def cancel_analysis(request, session_id):
    """Cancel a pending or processing analysis."""
    try:
        session = sessions.cancel_analysis(session_id)
    except RecordNotFoundError:
        return Response(
            {'error': 'Analysis session not found'},
            status=status.HTTP_404_NOT_FOUND
        )
    except SessionAlreadyFinishedError:
        return Response(
            {'error': 'Analysis has already finished'},
            status=status.HTTP_409_CONFLICT
        )

    return Response({
        'session_id': str(session.id),
        'status': session.status,
        'error': session.error_message,
    })


@extend_schema(
    summary='Delete old analysis sessions',
    tags=['Maintenance'],
    request={
        'application/json': {
            'type': 'object',
            'properties': {
                'hours': {'type': 'integer', 'description': 'Age threshold in hours'},
                'dry_run': {'type': 'boolean'},
            },
        }
    },
    responses={
        200: {'description': 'Number of sessions deleted'},
        400: {'description': 'Invalid hours value'},
    },
)
@api_view(['POST'])
@permission_classes([IsAdminUser])
def cleanup_sessions(request):
    """
    Delete sessions of any status older than `hours`.

    Request body:
    {
        "hours": 24,      // Optional: defaults to ANALYZER_SESSION_RETENTION_HOURS
        "dry_run": false  // Optional: only count matching sessions
    }
    """
    hours = request.data.get('hours')
    if hours is not None:
        try:
            hours = int(hours)
        except (TypeError, ValueError):
            hours = -1
        if hours < 0:
            return Response(
                {'error': 'hours must be a non-negative integer'},
                status=status.HTTP_400_BAD_REQUEST
            )

    dry_run = bool(request.data.get('dry_run', False))
    count = sessions.cleanup_sessions(hours=hours, dry_run=dry_run)

    logger.info(f"Session cleanup via API: {count} session(s), dry_run={dry_run}")
    return Response({'deleted': 0 if dry_run else count, 'matched': count, 'dry_run': dry_run})
