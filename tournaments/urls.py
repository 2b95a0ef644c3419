from django.urls import include, path

from .routers import admin_router, router

urlpatterns = [
    path("", include(router.urls)),
    path("admin/", include(admin_router.urls)),
]
