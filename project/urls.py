from django.urls import path

from taskflow.api import api

urlpatterns = [
    path("api/", api.urls),
]
