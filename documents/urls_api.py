"""
URL Configuration for the Document Pipeline API.

All endpoints are under /api/documents/ and scoped to a tenant.
"""
from django.urls import path
from . import views_api

urlpatterns = [
    # Generation
    path('<str:tenant_id>/generate', views_api.api_generate_document, name='api-documents-generate'),

    # Templates
    path('<str:tenant_id>/templates', views_api.api_templates_list, name='api-templates-list'),
    path('<str:tenant_id>/templates/<str:business_key>', views_api.api_template, name='api-template'),
    path('<str:tenant_id>/templates/<str:business_key>/preview', views_api.api_template_preview, name='api-template-preview'),
    path('<str:tenant_id>/templates/<str:business_key>/versions', views_api.api_template_history, name='api-template-history'),
    path('<str:tenant_id>/templates/<str:business_key>/versions/<int:version>', views_api.api_template_version, name='api-template-version'),
]
