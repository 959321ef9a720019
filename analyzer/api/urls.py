"""
Analysis API URL Configuration

Endpoints:
- POST /api/v1/analysis/                      - Start an analysis
- GET  /api/v1/analysis/<session_id>/         - Poll progress
- POST /api/v1/analysis/<session_id>/cancel/  - Cancel a running analysis
- POST /api/v1/analysis/cleanup/              - Delete old sessions (admin)
"""

from django.urls import path

from analyzer.api.views import (
    start_analysis,
    analysis_progress,
    cancel_analysis,
    cleanup_sessions,
)

app_name = 'analyzer_api'

urlpatterns = [
    path('analysis/', start_analysis, name='start_analysis'),
    path('analysis/cleanup/', cleanup_sessions, name='cleanup_sessions'),
    path('analysis/<uuid:session_id>/', analysis_progress, name='analysis_progress'),
    path('analysis/<uuid:session_id>/cancel/', cancel_analysis, name='cancel_analysis'),
]
