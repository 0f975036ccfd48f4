# knitmes/urls.py
from django.contrib import admin
from django.http import JsonResponse
from django.urls import path, include


def healthz(request):
    return JsonResponse({"status": "ok"})


urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/', include('fabricflow.api_urls')),
    path("healthz/", healthz),
]
