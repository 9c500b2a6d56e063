from django.urls import path
from . import views

app_name = "orders"

urlpatterns = [
    path("<int:pk>/status/", views.change_status, name="change_status"),
    path("<int:pk>/link/", views.create_link, name="create_link"),
    path("<int:pk>/timeline/", views.timeline, name="timeline"),
    # Public order summary by link token (no login required)
    path("public/<str:token>/", views.public_order_summary, name="public_order_summary"),
    path("qr/<str:token>.svg", views.qr_image_svg, name="qr_image"),
]
