from django.urls import include, path

urlpatterns = [
    path('api/documents/', include('documents.urls_api')),
]
