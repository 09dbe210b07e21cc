"""
URL configuration for the Academy storefront backend.

- /admin/: Django admin (jazzmin)
- /api/: storefront API, see ``elearning/urls.py``
"""
from django.contrib import admin
from django.urls import include, path

urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/', include('elearning.urls')),
]
