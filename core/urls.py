"""
URL configuration for the HOS Compliance Engine project.

API URL structure:
- /api/ - API root
- /api/health/ - Health check
- /api/compliance/monitoring - Monitoring lifecycle
- /api/compliance/duty-state, /evaluate - Duty state and evaluation
- /api/compliance/predictions, /actions - Predictions, overrides, prevention actions
- /api/compliance/rules - Rule registry and rule sync
- /api/compliance/alerts - Alerts
- /api/compliance/metrics - Compliance metrics
"""

from django.contrib import admin
from django.urls import path, include
from compliance.views import HealthCheckView, api_root

urlpatterns = [
    # Admin
    path('admin/', admin.site.urls),

    # API root - Documentation
    path('api/', api_root, name='api_root'),

    # Health check endpoint
    path('api/health/', HealthCheckView.as_view(), name='health_check'),

    # ==========================================================================
    # Compliance Engine
    # ==========================================================================
    path('api/compliance/', include('compliance.urls', namespace='compliance')),
]
