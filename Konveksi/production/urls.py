from django.urls import path
from . import views

app_name = "production"

urlpatterns = [
    path("orders/<int:order_id>/progress/", views.submit_progress_view, name="submit_progress"),
    path("orders/<int:order_id>/completion/", views.order_completion_view, name="order_completion"),
    path("orders/<int:order_id>/line-items/", views.line_items_view, name="line_items"),
    path("entries/<int:entry_id>/reverse/", views.reverse_entry_view, name="reverse_entry"),
    # Public, token-authenticated
    path("link/<str:token>/progress/", views.submit_progress_by_link, name="link_progress"),
    path("link/<str:token>/completion/", views.link_completion_view, name="link_completion"),
]
